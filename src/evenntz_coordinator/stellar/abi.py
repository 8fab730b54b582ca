"""Contract interfaces of the three Evenntz contract roles.

Parameter types use Soroban names. Payable functions take their attached
amount as a trailing i128 argument, appended by the client.
"""

from __future__ import annotations

from dataclasses import dataclass

from evenntz_coordinator.interfaces.ledger import ContractRole


@dataclass(frozen=True)
class FunctionSpec:
    name: str
    params: tuple[tuple[str, str], ...] = ()  # (name, soroban type)
    returns: str = "void"
    mutates: bool = False
    payable: bool = False

    @property
    def arity(self) -> int:
        return len(self.params)


def _read(name: str, returns: str, *params: tuple[str, str]) -> FunctionSpec:
    return FunctionSpec(name=name, params=params, returns=returns)


def _write(
    name: str, *params: tuple[str, str], returns: str = "void", payable: bool = False
) -> FunctionSpec:
    return FunctionSpec(
        name=name, params=params, returns=returns, mutates=True, payable=payable,
    )


FACTORY_ABI: dict[str, FunctionSpec] = {
    f.name: f
    for f in (
        _write(
            "create_event",
            ("organizer", "address"),
            ("name", "string"),
            ("kind", "u32"),
            ("price", "i128"),
            ("max_tickets", "u64"),
            returns="address",
        ),
        _write("deactivate_event", ("caller", "address"), ("event", "address")),
        _read("get_all_events", "vec<EventSummary>"),
        _write(
            "register_organization",
            ("owner", "address"),
            ("name", "string"),
            ("description", "string"),
            ("website", "string"),
        ),
        _write(
            "update_organization",
            ("owner", "address"),
            ("name", "string"),
            ("description", "string"),
            ("website", "string"),
        ),
        _read("get_organization", "option<Organization>", ("owner", "address")),
        _write("deactivate_organization", ("caller", "address"), ("owner", "address")),
    )
}

EVENT_ABI: dict[str, FunctionSpec] = {
    f.name: f
    for f in (
        _read("event_name", "string"),
        _read("event_type", "u32"),
        _read("ticket_price", "i128"),
        _read("max_tickets", "u64"),
        _read("owner", "address"),
        _read("is_active", "bool"),
        _read("ticket_contract", "address"),
        _write(
            "buy_ticket",
            ("buyer", "address"),
            ("metadata_uri", "string"),
            returns="u64",
            payable=True,
        ),
        _write(
            "mint_for_user",
            ("caller", "address"),
            ("user", "address"),
            ("metadata_uri", "string"),
            returns="u64",
        ),
        _write("approve_user", ("caller", "address"), ("user", "address")),
        _write("revoke_user", ("caller", "address"), ("user", "address")),
        _write("check_in", ("caller", "address"), ("token_id", "u64")),
    )
}

TICKET_ABI: dict[str, FunctionSpec] = {
    f.name: f
    for f in (
        _read("next_token_id", "u64"),
        _read("burned_tickets_count", "u64"),
        _read("owner_of", "option<address>", ("token_id", "u64")),
        _read("token_uri", "string", ("token_id", "u64")),
        _read("get_resale_info", "ResaleInfo", ("token_id", "u64")),
        _write(
            "list_for_resale",
            ("seller", "address"),
            ("token_id", "u64"),
            ("price", "i128"),
        ),
        _write(
            "buy_resale",
            ("buyer", "address"),
            ("token_id", "u64"),
            payable=True,
        ),
        _write("cancel_resale", ("owner", "address"), ("token_id", "u64")),
        _write(
            "airdrop_tickets",
            ("caller", "address"),
            ("users", "vec<address>"),
            ("metadata_uri", "string"),
        ),
    )
}

ROLE_ABIS: dict[ContractRole, dict[str, FunctionSpec]] = {
    ContractRole.FACTORY: FACTORY_ABI,
    ContractRole.EVENT: EVENT_ABI,
    ContractRole.TICKET: TICKET_ABI,
}


def lookup(role: ContractRole, function: str) -> FunctionSpec | None:
    """Return the function's spec, or None if the role does not declare it."""
    return ROLE_ABIS[role].get(function)
