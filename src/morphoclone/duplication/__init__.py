from morphoclone.duplication.context import ClonedIds, DuplicationContext
from morphoclone.duplication.duplicator import ModelDuplicator, normalize_json
from morphoclone.duplication.partition import PartitionModelDuplicator, PartitionRowSourceResolver
from morphoclone.duplication.resolver import RowSourceResolver, strategy

__all__ = [
    "ClonedIds",
    "DuplicationContext",
    "ModelDuplicator",
    "PartitionModelDuplicator",
    "PartitionRowSourceResolver",
    "RowSourceResolver",
    "normalize_json",
    "strategy",
]
