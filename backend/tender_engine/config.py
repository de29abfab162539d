from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TENDER_", env_file=".env", env_file_encoding="utf-8"
    )

    # App
    log_level: str = "INFO"
    extractor_version: str = "0.6.0"

    # Candidate extraction
    min_ref_length: int = 4
    max_ref_length: int = 25
    max_label_distance: int = 80
    context_window: int = 40
    phone_label_lookback: int = 60
    non_reference_lookback: int = 40
    phone_adjacency_window: int = 20
    regex_label_window_before: int = 100
    regex_label_window_after: int = 50

    # Segmentation
    segment_lookback_window: int = 200
    segment_marker_merge_distance: int = 20

    # Verification
    significant_word_min_length: int = 3
    address_word_overlap: float = 0.7

    # Normalization
    normalizer_context_before: int = 200
    normalizer_context_after: int = 100

    # Rule learning (empirically tuned, pending calibration review)
    min_value_pattern_length: int = 8
    max_pattern_collisions: int = 3
    min_value_pattern_score: int = 3
    min_pattern_digits: int = 4
    pattern_digit_slack: int = 0
    max_example_matches: int = 5

    # Cargo defaults (degrees Fahrenheit)
    frozen_max_temp_f: float = 32.0
    refrigerated_max_temp_f: float = 45.0


settings = Settings()
