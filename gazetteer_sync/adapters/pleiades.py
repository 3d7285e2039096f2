"""
Pleiades adapter.

Syncs the Pleiades gazetteer of ancient places from its nightly JSON dump.

Data source: https://pleiades.stoa.org/
License: CC BY 3.0
"""

from typing import Any, Optional

from gazetteer_sync.adapters.base import SourceAdapter
from gazetteer_sync.types import RawRecord, SourceName


class PleiadesAdapter(SourceAdapter):
    """
    Adapter for the Pleiades JSON dump.

    The dump is one gzipped object whose "@graph" array holds the places.
    Each place carries its locations with numeric start/end years and an
    edit history; prepare() lifts those into minDate/maxDate/modified.
    """

    source_name = SourceName.PLEIADES
    parse_options = {"record_path": "@graph.item"}
    file_name = "pleiades-places-latest.json.gz"

    # Used when no location carries numeric years (Pleiades period keys)
    PERIOD_MAPPING = {
        "neolithic": {"start": -7000, "end": -3000},
        "chalcolithic": {"start": -4500, "end": -3300},
        "archaic": {"start": -750, "end": -480},
        "classical": {"start": -480, "end": -323},
        "hellenistic-republican": {"start": -323, "end": -31},
        "roman": {"start": -31, "end": 476},
        "late-antique": {"start": 300, "end": 640},
        "mediaeval-byzantine": {"start": 640, "end": 1453},
        "modern": {"start": 1500, "end": 2000},
    }

    def prepare(self, raw: RawRecord) -> RawRecord:
        starts, ends, periods = [], [], []
        for location in raw.get("locations") or []:
            if not isinstance(location, dict):
                continue
            if isinstance(location.get("start"), (int, float)):
                starts.append(int(location["start"]))
            if isinstance(location.get("end"), (int, float)):
                ends.append(int(location["end"]))
            for attestation in location.get("attestations") or []:
                if isinstance(attestation, dict) and attestation.get("timePeriod"):
                    periods.append(attestation["timePeriod"])

        if not starts and not ends:
            for period in periods:
                span = self.PERIOD_MAPPING.get(str(period).lower().replace(" ", "-"))
                if span:
                    starts.append(span["start"])
                    ends.append(span["end"])

        if starts and "minDate" not in raw:
            raw["minDate"] = min(starts)
        if ends and "maxDate" not in raw:
            raw["maxDate"] = max(ends)

        modified = self._last_modified(raw.get("history"))
        if modified and "modified" not in raw:
            raw["modified"] = modified
        return raw

    @staticmethod
    def _last_modified(history: Any) -> Optional[str]:
        """Latest "modified" stamp in the place's edit history."""
        stamps = [
            entry["modified"]
            for entry in history or []
            if isinstance(entry, dict) and isinstance(entry.get("modified"), str)
        ]
        return max(stamps) if stamps else None
