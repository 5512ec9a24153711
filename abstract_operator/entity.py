"""
Base class for the typed domain entities that operators work with
"""

# Standard
from typing import Any, Dict, Optional

# Local
from .exceptions import ConversionError


class _EntityInfoMeta(type):
    """Keeps the identity based equality of EntityInfo on subclasses.
    dataclass(eq=True) assigns a field based __eq__ and sets __hash__ to None
    after the class is created, which would make entities unusable in a
    desired set.
    """

    _IDENTITY_METHODS = ("__eq__", "__hash__")

    def __setattr__(cls, name, value):
        if name in cls._IDENTITY_METHODS and name not in cls.__dict__:
            return
        super().__setattr__(name, value)


class EntityInfo(metaclass=_EntityInfoMeta):
    """An EntityInfo is the parsed form of one watched resource. Operator
    authors subclass it, usually as a dataclass:

        @dataclass
        class Job(EntityInfo):
            image: str
            replicas: int = 1

    Two entities are the same entity when they share type, namespace and
    name, regardless of the rest of their content.
    """

    # Set from the metadata of the resource the entity was converted from
    name = None
    namespace = None

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        name: Optional[str] = None,
        namespace: Optional[str] = None,
    ) -> "EntityInfo":
        """Build an entity from a parsed payload

        Args:
            data:  Dict[str, Any]
                The keyword arguments for the entity's constructor
            name:  Optional[str]
                The name of the resource the payload came from
            namespace:  Optional[str]
                The namespace of the resource the payload came from

        Returns:
            entity:  EntityInfo
                The constructed entity
        """
        if not isinstance(data, dict):
            raise ConversionError(
                f"Cannot build {cls.__name__} from {type(data).__name__}"
            )
        try:
            entity = cls(**data)
        except TypeError as err:
            raise ConversionError(f"Cannot build {cls.__name__}: {err}") from err
        if name is not None:
            entity.name = name
        if namespace is not None:
            entity.namespace = namespace
        return entity

    @classmethod
    def display_name(cls) -> str:
        """The default entity name for operators of this type"""
        return cls.__name__

    @classmethod
    def openapi_schema(cls) -> Optional[dict]:
        """Optional openAPIV3Schema used when registering a CRD for this type"""
        return None

    def identity(self) -> tuple:
        return (type(self).__name__, self.namespace, self.name)

    def __eq__(self, other) -> bool:
        return isinstance(other, EntityInfo) and self.identity() == other.identity()

    def __hash__(self) -> int:
        return hash(self.identity())

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.namespace}/{self.name})"
