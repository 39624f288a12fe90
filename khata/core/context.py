from dataclasses import dataclass


@dataclass(frozen=True)
class UserContext:
    """The authenticated owner every ledger operation acts on behalf of."""

    user_id: str
