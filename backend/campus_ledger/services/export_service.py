"""CSV export of participant pages."""
import csv
import io

from campus_ledger.schemas.participants import ParticipantRow
from campus_ledger.timeutil import to_iso

CSV_HEADER = "wallet,registeredAt,checkedInAt,claimedAt"


def render_participants_csv(rows: list[ParticipantRow]) -> str:
    """Header line plus one fully quoted line per participant, joined by newlines.

    Quotes inside cells are doubled; missing timestamps become empty cells.
    There is no trailing newline after the last line.
    """
    buffer = io.StringIO()
    buffer.write(CSV_HEADER + "\n")
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for row in rows:
        writer.writerow([
            row.wallet,
            to_iso(row.registered_at),
            to_iso(row.checked_in_at),
            to_iso(row.claimed_at),
        ])
    return buffer.getvalue().removesuffix("\n")


def export_filename(event_id: str) -> str:
    return f"{event_id}-participants.csv"
