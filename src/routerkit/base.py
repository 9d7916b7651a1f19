"""Base model for routerkit configuration and rule objects."""

import json
from typing import Any, Dict, Optional, Type, TypeVar

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import ConfigValidationError

T = TypeVar('T', bound='RouterModel')


class RouterModel(BaseModel):
    """Base class for routerkit models using Pydantic.

    Models are immutable once built; use ``model_copy(update=...)`` (or the
    ``with_*`` builders on subclasses) to derive a changed copy.
    """

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    # Schema generation methods
    @classmethod
    def json_schema(cls, title: Optional[str] = None) -> Dict[str, Any]:
        """
        Generate JSON Schema for this model.

        Args:
            title: Optional title for the schema

        Returns:
            JSON Schema as a dictionary
        """
        schema = cls.model_json_schema()
        if title:
            schema['title'] = title
        return schema

    @classmethod
    def yaml_schema(cls, title: Optional[str] = None) -> str:
        """
        Generate YAML Schema for this model.

        Returns JSON Schema in YAML format for better readability.
        """
        schema = cls.json_schema(title)
        return yaml.dump(schema, default_flow_style=False, sort_keys=False)

    # Serialization methods
    def to_dict(self, exclude_none: bool = True) -> Dict[str, Any]:
        """
        Convert this model to a dictionary.

        Args:
            exclude_none: Whether to exclude None values

        Returns:
            Dictionary representation
        """
        return self.model_dump(exclude_none=exclude_none, by_alias=True)

    def to_json(self, exclude_none: bool = True, indent: int = 2) -> str:
        """Convert this model to JSON string."""
        return json.dumps(self.to_dict(exclude_none), indent=indent)

    def to_yaml(self, exclude_none: bool = True) -> str:
        """Convert this model to YAML string."""
        return yaml.dump(self.to_dict(exclude_none), default_flow_style=False, sort_keys=False)

    # Deserialization methods
    @classmethod
    def from_dict(cls: Type[T], data: Dict[str, Any]) -> T:
        """
        Create an instance from a dictionary.

        Raises:
            ConfigValidationError: If the data does not match the model
        """
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigValidationError(
                f"{cls.__name__} must be a mapping, got {type(data).__name__}"
            )
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigValidationError(f"Invalid {cls.__name__}: {e}") from e

    @classmethod
    def from_json(cls: Type[T], json_str: str) -> T:
        """Create an instance from JSON string."""
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise ConfigValidationError(f"Invalid JSON: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def from_yaml(cls: Type[T], yaml_str: str) -> T:
        """Create an instance from YAML string."""
        try:
            data = yaml.safe_load(yaml_str)
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Invalid YAML: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def from_json_file(cls: Type[T], filename: str) -> T:
        """Create an instance from JSON file."""
        with open(filename, 'r') as f:
            return cls.from_json(f.read())

    @classmethod
    def from_yaml_file(cls: Type[T], filename: str) -> T:
        """Create an instance from YAML file."""
        with open(filename, 'r') as f:
            return cls.from_yaml(f.read())
