"""Country name to ISO3 lookup."""

from __future__ import annotations

import re
import unicodedata
from pathlib import Path
from typing import Iterable, Mapping

import pandas as pd

from .schemas import COUNTRY_CODES

_NON_ALNUM = re.compile(r"[^0-9a-z]+")


def normalize_country_name(name: str) -> str:
    """Case-, accent- and punctuation-insensitive key for a country name."""
    decomposed = unicodedata.normalize("NFKD", name)
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    key = _NON_ALNUM.sub(" ", ascii_only.casefold()).strip()
    if key.startswith("the "):
        key = key[4:]
    return key


class CountryCodeIndex:
    """Maps free-text country names (and aliases) to ISO3 codes."""

    def __init__(
        self,
        names: Mapping[str, str],
        *,
        overrides: Mapping[str, str] | None = None,
    ) -> None:
        self._by_key: dict[str, str] = {}
        for name, iso3 in names.items():
            self._by_key[normalize_country_name(name)] = iso3.strip().upper()
        # overrides win over the reference table
        for name, iso3 in (overrides or {}).items():
            self._by_key[normalize_country_name(name)] = iso3.strip().upper()

    def __len__(self) -> int:
        return len(self._by_key)

    def lookup(self, name: object) -> str | None:
        if name is None or name is pd.NA or not isinstance(name, str):
            return None
        key = normalize_country_name(name)
        if not key:
            return None
        code = self._by_key.get(key)
        if code is None and len(key) == 3 and key.upper() in self._by_key.values():
            return key.upper()
        return code

    def codes_for(self, names: Iterable[object]) -> tuple[list[str | None], tuple[str, ...]]:
        """Return one code per name plus the sorted distinct unmatched names."""
        codes: list[str | None] = []
        unmatched: set[str] = set()
        for name in names:
            code = self.lookup(name)
            codes.append(code)
            if code is None and isinstance(name, str) and name.strip():
                unmatched.add(name.strip())
        return codes, tuple(sorted(unmatched))

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        *,
        overrides: Mapping[str, str] | None = None,
    ) -> CountryCodeIndex:
        names: dict[str, str] = {}
        for row in frame.itertuples(index=False):
            row_dict = row._asdict()
            iso3 = row_dict.get("iso3")
            if iso3 is None or iso3 is pd.NA:
                continue
            names[str(row_dict["name"])] = str(iso3)
            aliases = row_dict.get("aliases")
            if isinstance(aliases, str):
                for alias in aliases.split(";"):
                    if alias.strip():
                        names[alias.strip()] = str(iso3)
        return cls(names, overrides=overrides)

    @classmethod
    def from_csv(cls, path: Path, *, overrides: Mapping[str, str] | None = None) -> CountryCodeIndex:
        from .io_data import load_table

        dataset = load_table(path, COUNTRY_CODES)
        return cls.from_frame(dataset.frame, overrides=overrides)
