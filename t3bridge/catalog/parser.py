"""Model catalog parsed from a markdown file.

Catalog format::

    # OpenAI Models
    GPT-4o (vision, search) - https://beta.t3.chat/new?model=gpt-4o&q=%s Regular
"""

import os
import re
from typing import Dict, List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from t3bridge.extraction.errors import CatalogError
from t3bridge.extraction.models import GenerationKind


MODEL_LINE_PATTERN = re.compile(
    r'^(.+?)\s*\(([^)]*)\)\s*-\s*(https://beta\.t3\.chat/new\?model=([^&]+)&q=%s)(.*)$'
)

FEATURE_NAMES = {
    'vision': 'vision',
    'reasoning': 'reasoning',
    'pdf': 'pdf',
    'search': 'search',
    'effort control': 'effort_control',
    'fast': 'fast',
}


class ModelFeatures(BaseModel):
    vision: bool = False
    reasoning: bool = False
    pdf: bool = False
    search: bool = False
    effort_control: bool = False
    fast: bool = False
    image_gen: bool = False

    def enabled(self) -> List[str]:
        return [name for name, value in self.model_dump().items() if value]


class ChatModel(BaseModel):
    """A model the chat service can be pointed at"""
    name: str
    provider: str
    url: str
    slug: str
    features: ModelFeatures = Field(default_factory=ModelFeatures)
    special_notes: Optional[str] = None
    tier: str = 'Regular'  # 'Regular', 'Premium'

    @property
    def generation_kind(self) -> GenerationKind:
        return GenerationKind.IMAGE if self.features.image_gen else GenerationKind.TEXT

    @property
    def is_premium(self) -> bool:
        return self.tier == 'Premium'

    def unsupported_features(
        self,
        image_url: Optional[str] = None,
        pdf_url: Optional[str] = None,
        use_search: bool = False
    ) -> List[str]:
        """List requested capabilities this model lacks"""
        missing = []
        if image_url and not self.features.vision:
            missing.append('vision')
        if pdf_url and not self.features.pdf:
            missing.append('pdf')
        if use_search and not self.features.search:
            missing.append('search')
        return missing


def parse_features(features_str: str) -> ModelFeatures:
    flags: Dict[str, bool] = {}
    for feature in features_str.split(','):
        field = FEATURE_NAMES.get(feature.strip().lower())
        if field:
            flags[field] = True
    return ModelFeatures(**flags)


def parse_tier(notes: str) -> str:
    return 'Premium' if 'premium' in notes.lower() else 'Regular'


def parse_model_line(line: str, provider: str) -> Optional[ChatModel]:
    """Parse one catalog line, or return None if it is not a model entry"""
    match = MODEL_LINE_PATTERN.match(line.strip())
    if not match:
        return None

    name, features_str, url, slug, notes = match.groups()
    features = parse_features(features_str)
    lowered = name.lower()
    if 'imagegen' in lowered or 'image gen' in lowered:
        features.image_gen = True

    notes = notes.strip()
    return ChatModel(
        name=name.strip(),
        provider=provider,
        url=url,
        slug=slug,
        features=features,
        special_notes=notes or None,
        tier=parse_tier(notes),
    )


def parse_catalog(content: str) -> List[ChatModel]:
    models = []
    provider = ''
    for line in content.splitlines():
        if line.startswith('# ') and 'Models' in line:
            provider = line[2:].replace(' Models', '').strip()
            continue
        if 'https://beta.t3.chat/new?model=' in line:
            model = parse_model_line(line, provider)
            if model:
                models.append(model)
    return models


class ModelCatalog:
    """Registry of available chat models"""

    def __init__(self, models: Optional[List[ChatModel]] = None):
        self.models: List[ChatModel] = list(models or [])

    @classmethod
    def load(cls, path: Optional[str] = None) -> 'ModelCatalog':
        """
        Load the catalog from a markdown file

        Args:
            path: Catalog path (defaults to T3BRIDGE_MODELS_FILE or models.md)

        Raises:
            CatalogError: If the file cannot be read
        """
        path = path or os.getenv('T3BRIDGE_MODELS_FILE', 'models.md')
        try:
            with open(path, 'r', encoding='utf-8') as f:
                content = f.read()
        except OSError as e:
            raise CatalogError(f"Error loading model catalog {path}: {e}") from e

        catalog = cls(parse_catalog(content))
        logger.info(f"Loaded {len(catalog.models)} models from {path}")
        return catalog

    def get_model_by_name(self, name: str) -> Optional[ChatModel]:
        """First model whose name contains the given text (case-insensitive)"""
        name_lower = name.lower()
        for model in self.models:
            if name_lower in model.name.lower():
                return model
        logger.warning(f"Model {name} not found in catalog")
        return None

    def get_models_by_provider(self, provider: str) -> List[ChatModel]:
        return [m for m in self.models if m.provider.lower() == provider.lower()]

    def get_models_by_feature(self, feature: str) -> List[ChatModel]:
        return [m for m in self.models if getattr(m.features, feature, False)]

    def get_models_by_tier(self, tier: str) -> List[ChatModel]:
        return [m for m in self.models if m.tier == tier]
