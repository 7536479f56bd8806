"""Base Schema Infrastructure.

This module defines the base types, enums, and schema builder classes
used to describe the shape of a reading batch as it travels through the
ingestion pipeline.
"""

import polars as pl
from enum import Enum
from typing import Dict, Any, List, Union, Type, TypedDict, NotRequired


class EnumLiteral(str, Enum):
    """
    A general base class for string-based enums that behave like literals.
    Ensures compatibility with str comparisons and retains enum benefits.
    """
    def __new__(cls, value, *args, **kwargs):
        obj = str.__new__(cls, value)
        obj._value_ = value
        return obj

    def __str__(self):
        return self.value

    def __eq__(self, other):
        if isinstance(other, str):
            return self.value == other
        return super().__eq__(other)

    def __hash__(self):
        return hash(self.value)
    
    def __repr__(self):
        return self.value


class ColumnSchema(TypedDict):
    """Schema definition for a single column."""
    name: str
    dtype: Union[Type[pl.DataType], pl.DataType]
    description: str
    unit: NotRequired[str]
    constraints: NotRequired[Dict[str, Any]]


class BatchSchemaDefinition:
    """Schema definition for a batch of glucose readings.
    
    Provides the polars dtype map used to build empty and non-empty
    batches, cast expressions, and a structural check used by the
    pipeline stages before they hand a batch on.
    """
    
    def __init__(self, columns: List[ColumnSchema]) -> None:
        """Initialize schema definition.
        
        Args:
            columns: Column definitions in batch order
        """
        self.columns = columns
    
    def get_polars_schema(self) -> Dict[str, pl.DataType]:
        """Get Polars dtype schema dictionary.
        
        Returns:
            Dictionary mapping column names to Polars data types
        """
        return {col["name"]: col["dtype"] for col in self.columns}
    
    def get_column_names(self) -> List[str]:
        """Get list of all column names in schema order."""
        return [col["name"] for col in self.columns]
    
    def get_cast_expressions(self) -> List[pl.Expr]:
        """Get Polars expressions for casting columns.
        
        Returns:
            List of pl.col().cast() expressions for use with df.with_columns()
        """
        return [pl.col(col["name"]).cast(col["dtype"]) for col in self.columns]
    
    def empty(self) -> pl.DataFrame:
        """Build an empty batch with the schema's columns and dtypes."""
        return pl.DataFrame(schema=self.get_polars_schema())
    
    def validate_dataframe(self, df: pl.DataFrame) -> pl.DataFrame:
        """Check that a DataFrame carries every schema column and cast it.
        
        Args:
            df: DataFrame to validate
            
        Returns:
            DataFrame restricted to schema columns in schema order, cast to schema dtypes
            
        Raises:
            ValueError: If required columns are missing
        """
        missing_columns = [name for name in self.get_column_names() if name not in df.columns]
        if missing_columns:
            raise ValueError(f"Missing required columns: {missing_columns}")
        return df.select(self.get_column_names()).with_columns(self.get_cast_expressions())
