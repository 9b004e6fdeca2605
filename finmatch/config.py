"""Engine configuration using pydantic-settings."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    # Classification pipeline
    auto_apply_threshold: float = 0.95
    candidate_threshold: float = 0.5
    stage_timeout: float = 10.0  # seconds per external stage call
    classification_max_concurrency: int = 16

    # Rules
    rules_default_confidence: float = 0.8

    # Bank-supplied categories
    bank_category_default_confidence: float = 0.95
    bank_category_providers: str = "csv,ofx,akahu"

    # Statistical model (TF-IDF k-NN over categorized history)
    ml_enabled: bool = True
    ml_min_training_samples: int = 10
    ml_neighbors: int = 5
    ml_similarity_floor: float = 0.3

    # Local LLM via Ollama
    llm_enabled: bool = False
    llm_base_url: str = "http://localhost:11434"
    llm_model: str = "mistral"
    llm_timeout: float = 60.0  # seconds per request
    llm_confidence_high: float = 0.9
    llm_confidence_medium: float = 0.7
    llm_confidence_low: float = 0.5
    # False = language-model answers are always held for review
    llm_auto_apply: bool = False

    # Transfer detection
    transfer_amount_tolerance: float = 0.05  # relative difference
    transfer_date_tolerance_days: int = 3
    transfer_min_confidence: float = 0.5
    # Comma-separated keywords that hint at a transfer between own accounts
    transfer_keywords: str = "TRANSFER,XFER,TRF,INTERNAL,SAVINGS"

    # Reconciliation
    reconciliation_amount_tolerance: float = 0.05
    reconciliation_date_tolerance_days: int = 3
    reconciliation_min_confidence: float = 0.5

    # Rule suggestions
    suggestion_min_confidence: float = 0.7
    suggestion_min_match_count: int = 3
    suggestion_min_history: int = 10
    suggestion_sample_size: int = 5
    suggestion_cooldown_days: int = 30
    suggestion_rule_coverage_cutoff: float = 0.8

    @property
    def transfer_keywords_list(self) -> list[str]:
        return [k.strip().upper() for k in self.transfer_keywords.split(",") if k.strip()]

    @property
    def bank_category_providers_list(self) -> list[str]:
        return [p.strip().lower() for p in self.bank_category_providers.split(",") if p.strip()]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
