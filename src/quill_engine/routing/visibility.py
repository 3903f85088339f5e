"""Which fields a recipient may see and fill."""

from typing import Iterable, Protocol


class _FieldLike(Protocol):
    id: str
    recipient_id: str | None


def visible_fields(fields: Iterable[_FieldLike], recipient_id: str) -> list:
    """Fields bound to ``recipient_id`` plus unbound fields, in input order.

    The same result drives both the signing view and submission validation.
    """
    return [f for f in fields if f.recipient_id is None or f.recipient_id == recipient_id]


def visible_field_ids(fields: Iterable[_FieldLike], recipient_id: str) -> set[str]:
    return {f.id for f in visible_fields(fields, recipient_id)}
