"""ETL modules for fetching Congressional data."""

from legistrack.etl.congress_api import CongressApiClient
from legistrack.etl.bills import BillFetcher, SyncResult, parse_bill_id
from legistrack.etl.full_text import FullTextFetcher
from legistrack.etl.govtrack import GovTrackClient

__all__ = [
    "CongressApiClient",
    "BillFetcher",
    "SyncResult",
    "parse_bill_id",
    "FullTextFetcher",
    "GovTrackClient",
]
