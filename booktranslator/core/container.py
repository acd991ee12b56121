"""
Dependency injection container for the translation service.

Components are built lazily from one TranslationConfig, so a caller (or a
test) can swap any of them by assigning the underscored attribute before
first use.
"""
from typing import Optional

from booktranslator.api.job_control import JobController
from booktranslator.api.translation_state import ActiveJobRegistry
from booktranslator.config import TranslationConfig
from booktranslator.core.glossary import GlossaryExtractor
from booktranslator.core.llm.base import LLMProvider
from booktranslator.core.llm.providers.openai import OpenAICompatibleProvider
from booktranslator.core.orchestrator import JobOrchestrator
from booktranslator.core.retry_manager import RetryConfig
from booktranslator.core.segment_translator import SegmentTranslator
from booktranslator.persistence.checkpoint_manager import CheckpointManager
from booktranslator.persistence.database import LocalStore
from booktranslator.persistence.remote_store import RemoteStore
from booktranslator.persistence.store import Store


class ServiceContainer:
    """
    Wires store, backend, translator and job control together.

    Example:
        container = ServiceContainer(TranslationConfig.from_overrides({'store_backend': 'local'}))
        await container.checkpoints.ensure_schema()
        await container.controller.start(book_uuid)
    """

    def __init__(self, config: Optional[TranslationConfig] = None):
        self.config = config or TranslationConfig()
        self._store: Optional[Store] = None
        self._provider: Optional[LLMProvider] = None
        self._checkpoints: Optional[CheckpointManager] = None
        self._translator: Optional[SegmentTranslator] = None
        self._glossary_extractor: Optional[GlossaryExtractor] = None
        self._registry: Optional[ActiveJobRegistry] = None
        self._orchestrator: Optional[JobOrchestrator] = None
        self._controller: Optional[JobController] = None

    def _llm_retry_config(self) -> RetryConfig:
        return RetryConfig.from_retries(self.config.max_retries, self.config.retry_base_delay)

    @property
    def store(self) -> Store:
        if self._store is None:
            config = self.config
            if config.store_backend == 'remote':
                self._store = RemoteStore(
                    config.store_url,
                    config.store_token,
                    retry_config=RetryConfig.from_retries(config.store_max_retries,
                                                          config.store_retry_base_delay),
                    timeout=config.store_timeout,
                )
            else:
                self._store = LocalStore(config.database_path)
        return self._store

    @property
    def provider(self) -> LLMProvider:
        if self._provider is None:
            self._provider = OpenAICompatibleProvider(
                api_base_url=self.config.api_base_url,
                model=self.config.model,
                api_key=self.config.api_key,
                timeout=self.config.request_timeout,
            )
        return self._provider

    @property
    def checkpoints(self) -> CheckpointManager:
        if self._checkpoints is None:
            self._checkpoints = CheckpointManager(self.store)
        return self._checkpoints

    @property
    def translator(self) -> SegmentTranslator:
        if self._translator is None:
            self._translator = SegmentTranslator(
                self.provider,
                retry_config=self._llm_retry_config(),
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
            )
        return self._translator

    @property
    def glossary_extractor(self) -> GlossaryExtractor:
        if self._glossary_extractor is None:
            self._glossary_extractor = GlossaryExtractor(
                self.provider,
                retry_config=self._llm_retry_config(),
                max_tokens=self.config.max_tokens,
                temperature=self.config.glossary_temperature,
            )
        return self._glossary_extractor

    @property
    def registry(self) -> ActiveJobRegistry:
        if self._registry is None:
            self._registry = ActiveJobRegistry()
        return self._registry

    @property
    def orchestrator(self) -> JobOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = JobOrchestrator(
                self.checkpoints,
                self.translator,
                self.glossary_extractor,
                registry=self.registry,
                checkpoint_interval=self.config.checkpoint_interval,
                context_segments=self.config.context_segments,
                placeholder_text=self.config.placeholder_text,
            )
        return self._orchestrator

    @property
    def controller(self) -> JobController:
        if self._controller is None:
            self._controller = JobController(self.orchestrator, self.checkpoints,
                                             registry=self.registry)
        return self._controller

    async def close(self):
        """Close network clients and the store."""
        if self._provider is not None:
            await self._provider.close()
        if self._store is not None:
            await self._store.close()
