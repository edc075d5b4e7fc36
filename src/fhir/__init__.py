"""
IPS Document Assembly Module

Builds an International Patient Summary document Bundle from a patient's
clinical resources, using the fhir.resources R4B models.

Components:
- references: Resource registry, Reference value object, identifier strategy
- placeholders: "No known information" resources per section
- sections: Section builder (fetch, placeholder policy, references)
- composer: Composition (document root)
- bundler: Document Bundle packager
- assembler: Main assembly service
"""
from .assembler import IPSAssembler, AssembledDocument
from .bundler import DocumentBundler
from .references import IdentifierStrategy, Reference

__all__ = [
    "IPSAssembler",
    "AssembledDocument",
    "DocumentBundler",
    "IdentifierStrategy",
    "Reference",
]
