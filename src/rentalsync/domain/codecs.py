"""Per-entity encrypt/decrypt transforms.

Every record is a plain mapping shaped like its table row ("rows in, rows
out"). A codec names the sensitive columns of one entity; everything else
(ids, foreign keys, timestamps, flags, counters) passes through untouched.

Three kinds of sensitive column exist:

- text: always present, always encrypted
- optional text: ``None`` or empty stays ``None``, never encrypted
- numeric: encrypted as the decimal string, parsed back to ``int`` on read;
  an unparsable value decrypts to ``nan`` rather than raising
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from rentalsync.shared.crypto import encrypt, get_field_cipher
from rentalsync.shared.hashing import hash_employee_key

Record = dict[str, Any]


def parse_int(value: object) -> int | float:
    """Parse a decimal string the way the stored numbers were written.

    Returns ``math.nan`` when the value is not an integer; callers must guard.
    """
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return math.nan


@dataclass(frozen=True)
class RecordCodec:
    """Field map for one entity."""

    entity: str
    text_fields: tuple[str, ...] = ()
    optional_fields: tuple[str, ...] = ()
    numeric_fields: tuple[str, ...] = ()

    @property
    def sensitive_fields(self) -> tuple[str, ...]:
        return self.text_fields + self.optional_fields + self.numeric_fields

    def encrypt(self, record: Mapping[str, Any]) -> Record:
        """Encrypt the sensitive columns of a plaintext record.

        Raises:
            InvalidPlaintextError: If a required text field is not a str.
        """
        out = dict(record)
        for name in self.text_fields:
            if name in out:
                out[name] = encrypt(out[name])
        for name in self.optional_fields:
            if name in out:
                out[name] = encrypt(out[name]) if out[name] else None
        for name in self.numeric_fields:
            if name in out:
                value = out[name]
                # None is passed through so encrypt() rejects it
                out[name] = encrypt(value if value is None else str(value))
        return out

    def decrypt_checked(self, record: Mapping[str, Any]) -> tuple[Record, list[str]]:
        """Decrypt and also report columns that looked encrypted but did not decrypt.

        Such columns keep their stored value in the returned record.
        """
        cipher = get_field_cipher()
        out = dict(record)
        undecryptable: list[str] = []

        def _read(name: str, value: Any) -> Any:
            if not isinstance(value, str) or not value:
                return value
            result = cipher.try_decrypt(value)
            if result.undecryptable:
                undecryptable.append(name)
            return result.value

        for name in self.text_fields:
            if name in out:
                out[name] = _read(name, out[name])
        for name in self.optional_fields:
            if name in out:
                out[name] = _read(name, out[name]) if out[name] else None
        for name in self.numeric_fields:
            if name in out:
                out[name] = parse_int(_read(name, out[name]))
        return out, undecryptable

    def decrypt(self, record: Mapping[str, Any]) -> Record:
        """Decrypt the sensitive columns of a stored record. Never raises."""
        decrypted, _ = self.decrypt_checked(record)
        return decrypted


CUSTOMER = RecordCodec(
    "customer",
    text_fields=("name", "phone"),
    optional_fields=("company", "address", "notes"),
)
INVENTORY_ITEM = RecordCodec("inventory_item", text_fields=("name", "category"))
INVENTORY_SIZE = RecordCodec(
    "inventory_size",
    text_fields=("title",),
    numeric_fields=("quantity", "on_hand", "price"),
)
TAG = RecordCodec("tag", text_fields=("name",))
# employee_key is hashed, never encrypted (see encrypt_user)
USER = RecordCodec("user", text_fields=("name", "role", "status"))
ORDER = RecordCodec(
    "order",
    optional_fields=("document_type", "document_other", "document_name", "document_id"),
)
ORDER_ITEM = RecordCodec("order_item", text_fields=("name", "size"))
ORDER_NOTE = RecordCodec("order_note", text_fields=("text",))


def encrypt_customer(customer: Mapping[str, Any]) -> Record:
    return CUSTOMER.encrypt(customer)


def decrypt_customer(customer: Mapping[str, Any]) -> Record:
    return CUSTOMER.decrypt(customer)


def encrypt_inventory_item(item: Mapping[str, Any]) -> Record:
    return INVENTORY_ITEM.encrypt(item)


def decrypt_inventory_item(item: Mapping[str, Any]) -> Record:
    return INVENTORY_ITEM.decrypt(item)


def encrypt_inventory_size(size: Mapping[str, Any]) -> Record:
    return INVENTORY_SIZE.encrypt(size)


def decrypt_inventory_size(size: Mapping[str, Any]) -> Record:
    return INVENTORY_SIZE.decrypt(size)


def encrypt_tag(tag: Mapping[str, Any]) -> Record:
    return TAG.encrypt(tag)


def decrypt_tag(tag: Mapping[str, Any]) -> Record:
    return TAG.decrypt(tag)


def encrypt_user(user: Mapping[str, Any], *, raw_employee_key: str | None = None) -> Record:
    """Encrypt a user record.

    ``employee_key`` is stored as a keyed hash so logins can match it directly;
    pass ``raw_employee_key`` to have it hashed here.
    """
    out = USER.encrypt(user)
    if raw_employee_key is not None:
        out["employee_key"] = hash_employee_key(raw_employee_key)
    return out


def decrypt_user(user: Mapping[str, Any]) -> Record:
    return USER.decrypt(user)


def encrypt_order(order: Mapping[str, Any]) -> Record:
    return ORDER.encrypt(order)


def decrypt_order(order: Mapping[str, Any] | None) -> Record:
    """Decrypt an order; a missing order yields empty document fields."""
    if not order:
        return {name: None for name in (*ORDER.optional_fields, "document_status")}
    return ORDER.decrypt(order)


def encrypt_order_item(item: Mapping[str, Any]) -> Record:
    return ORDER_ITEM.encrypt(item)


def decrypt_order_item(item: Mapping[str, Any]) -> Record:
    return ORDER_ITEM.decrypt(item)


def encrypt_order_note(note: Mapping[str, Any]) -> Record:
    return ORDER_NOTE.encrypt(note)


def decrypt_order_note(note: Mapping[str, Any]) -> Record:
    return ORDER_NOTE.decrypt(note)
