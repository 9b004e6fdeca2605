"""Settings tests."""

from finmatch.config import Settings


def test_defaults():
    settings = Settings(_env_file=None)
    assert settings.auto_apply_threshold == 0.95
    assert settings.candidate_threshold == 0.5
    assert settings.llm_enabled is False
    assert settings.transfer_keywords_list == ["TRANSFER", "XFER", "TRF", "INTERNAL", "SAVINGS"]


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("AUTO_APPLY_THRESHOLD", "0.9")
    monkeypatch.setenv("TRANSFER_KEYWORDS", " xfer , ,moved ")
    monkeypatch.setenv("BANK_CATEGORY_PROVIDERS", "CSV,Akahu")

    settings = Settings(_env_file=None)

    assert settings.auto_apply_threshold == 0.9
    assert settings.transfer_keywords_list == ["XFER", "MOVED"]
    assert settings.bank_category_providers_list == ["csv", "akahu"]
