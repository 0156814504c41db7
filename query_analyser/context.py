"""
Per-run analysis state
"""
from dataclasses import dataclass, field
from typing import Dict, Optional

from .schema_catalog import SchemaCatalog
from .usage_tracker import UsageTracker


class AliasMap:
    """
    Query alias to table name, shared by every statement of a run

    Later statements reusing an alias overwrite the earlier binding.
    """

    def __init__(self):
        self._aliases: Dict[str, str] = {}

    def __contains__(self, alias: str) -> bool:
        return alias.lower() in self._aliases

    def __len__(self) -> int:
        return len(self._aliases)

    def register(self, alias: str, table: str):
        self._aliases[alias.lower()] = table.lower()

    def resolve(self, name: str) -> str:
        """Table behind an alias; unknown names are returned as given"""
        name = name.lower()
        return self._aliases.get(name, name)

    def to_dict(self) -> Dict[str, str]:
        return dict(self._aliases)


@dataclass
class AnalysisContext:
    """Catalog, usage and aliases of one analysis run."""
    catalog: SchemaCatalog
    usage: UsageTracker = field(default_factory=UsageTracker)
    aliases: AliasMap = field(default_factory=AliasMap)

    @classmethod
    def for_connector(cls, db_connector, schema: Optional[str] = None) -> 'AnalysisContext':
        return cls(catalog=SchemaCatalog(db_connector, schema))
