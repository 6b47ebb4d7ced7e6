from morphoclone.model.datamodel import ColumnDescriptor, DataModel, Relationship, TableDescriptor
from morphoclone.model.fk_orderer import ForeignKeyOrderer

__all__ = ["ColumnDescriptor", "DataModel", "ForeignKeyOrderer", "Relationship", "TableDescriptor"]
