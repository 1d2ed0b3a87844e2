"""Tests for BankSelector."""

from capital_kernel.domain.lifecycle import MatchStatus
from capital_kernel.selectors.bank_selector import BankSelector

HEADER = "Datum;Bedrag;Tegenpartij;Mededeling"


def test_lists_imports_and_rows(
    session, deterministic_clock, bank_import_service, ledger_service, coop, shareholder,
    share_class, test_actor_id,
):
    ledger_service.initiate_purchase(coop.id, shareholder.id, share_class.id, 1, test_actor_id)
    first = bank_import_service.import_statement(
        coop.id,
        f"{HEADER}\n2024-01-03;250,00;Anna;+++001/0000/00177+++\n2024-01-02;5,00;Bart;gift\n",
        "jan.csv",
        test_actor_id,
    )
    deterministic_clock.advance(hours=1)
    second = bank_import_service.import_statement(
        coop.id, f"{HEADER}\n2024-02-01;7,00;Carl;fee\n", "feb.csv", test_actor_id
    )
    selector = BankSelector(session)

    imports = selector.list_imports(coop.id)
    assert [i.id for i in imports] == [second.id, first.id]
    assert imports[1].matched_count == 1

    rows = selector.list_bank_transactions(coop.id, bank_import_id=first.id)
    assert [r.counterparty for r in rows] == ["Bart", "Anna"]

    unmatched = selector.list_bank_transactions(coop.id, match_status=MatchStatus.UNMATCHED)
    assert {r.counterparty for r in unmatched} == {"Bart", "Carl"}
    auto = selector.list_bank_transactions(coop.id, match_status="AUTO_MATCHED")
    assert [r.ogm_code for r in auto] == ["+++001/0000/00177+++"]


def test_rows_are_coop_scoped(session, bank_import_service, coop, other_coop, test_actor_id):
    bank_import_service.import_statement(
        coop.id, f"{HEADER}\n2024-01-03;1,00;A;x\n", "a.csv", test_actor_id
    )
    assert BankSelector(session).list_bank_transactions(other_coop.id) == []
    assert BankSelector(session).list_imports(other_coop.id) == []
