"""
Result types returned by the external collaborators.

Fetches and validation submissions never raise; they return one of:
1. ResourceCollection / ValidationResponse on success
2. FetchFailure / ValidationTransportFailure on failure

Callers apply their own local policy to the failure variants.
"""
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple, Union

from fhir.resources.R4B.resource import Resource


@dataclass(frozen=True)
class ResourceCollection:
    """Resources of one type returned by a search."""
    resource_type: str
    resources: Tuple[Resource, ...] = ()

    def __len__(self) -> int:
        return len(self.resources)

    @classmethod
    def empty(cls, resource_type: str) -> "ResourceCollection":
        return cls(resource_type=resource_type)


@dataclass(frozen=True)
class FetchFailure:
    """
    A fetch that could not produce a collection.

    Attributes:
        resource_type: Resource type being fetched
        error: Human-readable reason
        status_code: HTTP status if the server answered, else None
    """
    resource_type: str
    error: str
    status_code: Optional[int] = None


@dataclass(frozen=True)
class ValidationResponse:
    """A 2xx answer from the validator."""
    status_code: int
    body: Any = field(default=None)


@dataclass(frozen=True)
class ValidationTransportFailure:
    """A non-2xx answer or a transport error while validating."""
    error: str
    status_code: Optional[int] = None


FetchResult = Union[ResourceCollection, FetchFailure]
SubmitResult = Union[ValidationResponse, ValidationTransportFailure]
