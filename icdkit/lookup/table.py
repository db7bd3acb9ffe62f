"""
LookupTable: the immutable code -> description mapping.

Keys are canonical short codes in canonical order. Lookups also accept
decimal strings and IcdCode values, so a table can be passed anywhere a
reference of defined codes is expected (`defined=table`).
"""

from collections.abc import Mapping
from types import MappingProxyType

from icdkit.codes.parse import coerce
from icdkit.models import CodeRange, IcdCode, LookupEntry


class LookupTable(Mapping):
    """Code -> description, plus the major and sub-chapter heading tables."""

    def __init__(self, entries=(), majors=None, sub_chapters=None, warnings=()):
        if isinstance(entries, Mapping):
            entries = entries.items()

        parsed: dict[IcdCode, str] = {}
        for code, description in entries:
            code = coerce(code)
            if code in parsed:
                raise ValueError(f"Duplicate lookup entry for {code.decimal}")
            parsed[code] = description

        ordered = sorted(parsed)
        self._codes = {c.short: c for c in ordered}
        self._descriptions = MappingProxyType({c.short: parsed[c] for c in ordered})

        majors = majors.items() if isinstance(majors, Mapping) else (majors or ())
        self.majors = MappingProxyType({
            coerce(code).short: desc
            for code, desc in sorted(majors, key=lambda kv: coerce(kv[0]).sort_key())
        })
        self.sub_chapters = MappingProxyType(dict(sub_chapters or {}))
        self.warnings = tuple(warnings)

    def _key(self, code) -> str:
        if isinstance(code, str) and code in self._descriptions:
            return code
        try:
            return coerce(code).short
        except ValueError:
            raise KeyError(code) from None

    def __getitem__(self, code) -> str:
        return self._descriptions[self._key(code)]

    def __iter__(self):
        return iter(self._descriptions)

    def __len__(self) -> int:
        return len(self._descriptions)

    def __repr__(self) -> str:
        return f"LookupTable({len(self)} codes, {len(self.majors)} majors, {len(self.sub_chapters)} sub-chapters)"

    def code(self, key) -> IcdCode:
        return self._codes[self._key(key)]

    def codes(self) -> list[IcdCode]:
        return list(self._codes.values())

    def entries(self):
        for short, code in self._codes.items():
            yield LookupEntry(code=code, description=self._descriptions[short])

    def to_dict(self) -> dict:
        return {
            "codes": dict(self._descriptions),
            "majors": dict(self.majors),
            "sub_chapters": {
                name: [rng.start.decimal, rng.end.decimal]
                for name, rng in self.sub_chapters.items()
            },
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LookupTable":
        sub_chapters = {
            name: CodeRange.build(coerce(start), coerce(end))
            for name, (start, end) in data.get("sub_chapters", {}).items()
        }
        return cls(
            entries=data.get("codes", {}),
            majors=data.get("majors", {}),
            sub_chapters=sub_chapters,
            warnings=data.get("warnings", ()),
        )
