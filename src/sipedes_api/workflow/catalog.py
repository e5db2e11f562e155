"""
Service Catalog

Layanan definitions (requirement labels, estimates, fees) loaded from YAML.
The engine only needs the ordered requirement list per service id.
"""

from pathlib import Path
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional
from typing import Union

import yaml
from loguru import logger
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator

from sipedes_api.workflow.exceptions import NotFound
from sipedes_api.workflow.models.permohonan import ServiceRef

DEFAULT_CATALOG_PATH = Path(__file__).parent / "catalog.yaml"


def label_key(label: str) -> str:
    """Comparison key for requirement labels: collapsed whitespace, case folded."""
    return " ".join(label.split()).casefold()


class Requirement(BaseModel):
    """One requirement slot of a layanan."""

    model_config = ConfigDict(frozen=True)

    label: str = Field(min_length=1)
    optional: bool = False


class LayananDefinition(BaseModel):
    """A service offered by the village."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    slug: str = ""
    description: str = ""
    category: str = ""
    estimated_days: int = Field(default=1, ge=0)
    fee: str = "Gratis"
    requirements: List[Requirement] = Field(default_factory=list)

    @field_validator("requirements", mode="before")
    @classmethod
    def _plain_strings_are_required(cls, value):
        if isinstance(value, list):
            return [{"label": item} if isinstance(item, str) else item for item in value]
        return value

    @field_validator("requirements")
    @classmethod
    def _unique_labels(cls, value: List[Requirement]) -> List[Requirement]:
        keys = [label_key(r.label) for r in value]
        if len(keys) != len(set(keys)):
            raise ValueError("requirement labels must be unique within a service")
        return value

    @property
    def required_labels(self) -> List[str]:
        return [r.label for r in self.requirements if not r.optional]

    @property
    def optional_labels(self) -> List[str]:
        return [r.label for r in self.requirements if r.optional]

    def canonical_label(self, label: str) -> Optional[str]:
        """Catalog spelling of ``label`` or None when it is not a requirement here."""
        key = label_key(label)
        for requirement in self.requirements:
            if label_key(requirement.label) == key:
                return requirement.label
        return None

    def to_ref(self) -> ServiceRef:
        return ServiceRef(service_id=self.id, name=self.name)


class ServiceCatalog:
    """In-memory catalog keyed by service id."""

    def __init__(self, services: Iterable[LayananDefinition]):
        self._services: Dict[int, LayananDefinition] = {}
        for service in services:
            if service.id in self._services:
                raise ValueError(f"Duplicate service id {service.id} in catalog")
            self._services[service.id] = service

    @classmethod
    def from_yaml(cls, content: Union[str, bytes, Path]) -> "ServiceCatalog":
        """
        Load a catalog from YAML text, bytes or a file path.

        Raises:
            ValueError: invalid YAML syntax or empty document
            pydantic.ValidationError: entries not matching LayananDefinition
        """
        if isinstance(content, Path):
            content = content.read_text(encoding="utf-8")
        elif isinstance(content, bytes):
            content = content.decode("utf-8")

        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            logger.error(f"Service catalog YAML parsing error: {e}")
            raise ValueError(f"Invalid YAML syntax: {e}")

        if not data or "services" not in data:
            raise ValueError("Service catalog must define a 'services' list")

        catalog = cls(LayananDefinition(**entry) for entry in data["services"])
        logger.debug(f"Loaded service catalog with {len(catalog)} services")
        return catalog

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "ServiceCatalog":
        """Load from ``path`` or the bundled catalog.yaml."""
        return cls.from_yaml(Path(path) if path else DEFAULT_CATALOG_PATH)

    def __len__(self) -> int:
        return len(self._services)

    def list(self) -> List[LayananDefinition]:
        return sorted(self._services.values(), key=lambda s: s.id)

    def get(self, service_id: int) -> LayananDefinition:
        service = self._services.get(service_id)
        if service is None:
            raise NotFound(f"Layanan {service_id} not found", service_id=service_id)
        return service

    def get_by_slug(self, slug: str) -> LayananDefinition:
        """Case-insensitive lookup by the URL slug."""
        key = slug.strip().lower()
        for service in self._services.values():
            if service.slug and service.slug.lower() == key:
                return service
        raise NotFound(f"Layanan '{slug}' not found", slug=slug)

    def requirements(self, service_id: int) -> List[str]:
        """Ordered requirement labels (required and optional) for a service."""
        return [r.label for r in self.get(service_id).requirements]
