"""Tests for the participant view: union of ledgers, filters, paging and CSV."""
import pydantic
import pytest

from campus_ledger.schemas.participants import ParticipantRow, ParticipantsQuery, StageFilter
from campus_ledger.services.export_service import CSV_HEADER, export_filename, render_participants_csv
from tests.conftest import T0


@pytest.fixture
def funnel(store, ev1, clock):
    """Five wallets at different funnel positions on ev1."""
    store.add_registration("ev1", "alpha", "r-alpha")
    store.add_registration("ev1", "Bravo", "r-bravo")
    store.add_registration("ev1", "charlie", "r-charlie")
    clock.advance(hours=1)
    store.add_checkin("ev1", "alpha", "c-alpha")
    store.add_checkin("ev1", "bravo", "c-bravo")
    store.add_checkin("ev1", "echo", "c-echo")
    clock.advance(hours=1)
    store.add_claim("ev1", "alpha", "m-alpha", "mint-alpha")
    store.add_claim("ev1", "delta", "m-delta", "mint-delta")
    return store


def wallets(page):
    return [row.wallet for row in page.rows]


class TestListParticipants:
    def test_union_of_all_ledgers(self, funnel):
        """Wallets present in any ledger appear once, sorted."""
        rows = funnel.list_participants("ev1")
        assert [row.wallet for row in rows] == ["alpha", "bravo", "charlie", "delta", "echo"]

    def test_outer_join_timestamps(self, funnel, clock):
        rows = {row.wallet: row for row in funnel.list_participants("ev1")}
        assert rows["alpha"].registered_at == T0
        assert rows["alpha"].claimed_at == clock.now
        assert rows["delta"].registered_at is None
        assert rows["delta"].checked_in_at is None
        assert rows["delta"].claimed_at == clock.now
        assert rows["charlie"].checked_in_at is None

    def test_other_events_excluded(self, funnel):
        assert funnel.list_participants("other") == []


class TestStageFilter:
    @pytest.mark.parametrize(
        "stage, expected",
        [
            (StageFilter.all, ["alpha", "bravo", "charlie", "delta", "echo"]),
            (StageFilter.registered, ["alpha", "bravo", "charlie"]),
            (StageFilter.checked_in, ["alpha", "bravo", "echo"]),
            (StageFilter.claimed, ["alpha", "delta"]),
        ],
    )
    def test_stage_means_has_entry(self, funnel, stage, expected):
        """A stage filter keeps wallets that reached it, whatever came later."""
        page = funnel.list_participants_page("ev1", ParticipantsQuery(stage=stage))
        assert wallets(page) == expected
        assert page.total == len(expected)


class TestSearch:
    def test_case_insensitive_substring(self, funnel):
        page = funnel.list_participants_page("ev1", ParticipantsQuery(search="AV"))
        assert wallets(page) == ["bravo"]

    def test_search_combines_with_stage(self, funnel):
        page = funnel.list_participants_page("ev1", ParticipantsQuery(search="a", stage=StageFilter.claimed))
        assert wallets(page) == ["alpha", "delta"]

    def test_blank_search_matches_everything(self, funnel):
        query = ParticipantsQuery(search="   ")
        assert query.search is None
        assert funnel.list_participants_page("ev1", query).total == 5

    def test_wildcard_characters_match_literally(self, store, ev1):
        """% and _ in the search term are plain characters."""
        store.add_registration("ev1", "ab%cd", None)
        store.add_registration("ev1", "abxcd", None)
        store.add_registration("ev1", "ab_cd", None)

        page = store.list_participants_page("ev1", ParticipantsQuery(search="b%c"))
        assert wallets(page) == ["ab%cd"]
        page = store.list_participants_page("ev1", ParticipantsQuery(search="_"))
        assert wallets(page) == ["ab_cd"]


class TestPagination:
    def test_total_is_filtered_count(self, funnel):
        """total counts every filtered row, not just the page."""
        page = funnel.list_participants_page("ev1", ParticipantsQuery(limit=2, offset=1))
        assert wallets(page) == ["bravo", "charlie"]
        assert page.total == 5
        assert (page.limit, page.offset) == (2, 1)

    def test_offset_past_end(self, funnel):
        page = funnel.list_participants_page("ev1", ParticipantsQuery(offset=50))
        assert page.rows == []
        assert page.total == 5

    def test_pages_cover_all_rows_once(self, funnel):
        seen = []
        for offset in range(0, 5, 2):
            seen += wallets(funnel.list_participants_page("ev1", ParticipantsQuery(limit=2, offset=offset)))
        assert seen == ["alpha", "bravo", "charlie", "delta", "echo"]

    @pytest.mark.parametrize("fields", [{"limit": 0}, {"limit": 1001}, {"offset": -1}])
    def test_bounds(self, fields):
        with pytest.raises(pydantic.ValidationError):
            ParticipantsQuery(**fields)


class TestCsvExport:
    def test_header_only_when_empty(self):
        assert render_participants_csv([]) == CSV_HEADER

    def test_lines_joined_without_trailing_newline(self):
        """Lines are separated by a single newline and the output ends on the last row."""
        rows = [ParticipantRow(wallet="a"), ParticipantRow(wallet="b")]
        assert render_participants_csv(rows) == CSV_HEADER + '\n"a","","",""\n"b","","",""'

    def test_quotes_and_empty_timestamps(self):
        """Every cell is quoted, embedded quotes doubled, nulls empty."""
        rows = [ParticipantRow(wallet='we"ird', registered_at=T0)]
        lines = render_participants_csv(rows).splitlines()
        assert lines[0] == "wallet,registeredAt,checkedInAt,claimedAt"
        assert lines[1] == '"we""ird","2026-03-01T12:00:00.000Z","",""'

    def test_export_uses_page(self, funnel):
        page = funnel.list_participants_page("ev1", ParticipantsQuery(stage=StageFilter.claimed))
        lines = render_participants_csv(page.rows).splitlines()
        assert len(lines) == 3
        assert lines[1] == '"alpha","2026-03-01T12:00:00.000Z","2026-03-01T13:00:00.000Z","2026-03-01T14:00:00.000Z"'
        assert lines[2] == '"delta","","","2026-03-01T14:00:00.000Z"'

    def test_filename(self):
        assert export_filename("ev1") == "ev1-participants.csv"
