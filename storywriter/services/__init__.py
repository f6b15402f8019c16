"""Generation services package."""

from storywriter.services.providers import (
    HuggingFaceProvider,
    ProviderResponseError,
    TextGenerationProvider,
    TogetherAIProvider,
    create_provider,
)
from storywriter.services.generation_client import (
    FALLBACK_INTERVIEW_PROMPT,
    ResilientGenerationClient,
    create_generation_client,
)
from storywriter.services.story_generator import StoryGenerator
from storywriter.services.connectivity import check_backend_connectivity

__all__ = [
    'TextGenerationProvider',
    'HuggingFaceProvider',
    'TogetherAIProvider',
    'ProviderResponseError',
    'create_provider',
    'FALLBACK_INTERVIEW_PROMPT',
    'ResilientGenerationClient',
    'create_generation_client',
    'StoryGenerator',
    'check_backend_connectivity',
]
