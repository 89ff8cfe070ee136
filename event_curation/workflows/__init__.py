"""Pipeline workflows."""

from .event_pipeline import (  # noqa: F401
    Components,
    BatchSettings,
    main,
    run,
    run_dedup_pass,
    run_tag_summary_pass,
    run_embedding_pass,
    run_scoring_pass,
    get_user_centroids,
    score_event_for_user,
)

__all__ = [
    "Components",
    "BatchSettings",
    "main",
    "run",
    "run_dedup_pass",
    "run_tag_summary_pass",
    "run_embedding_pass",
    "run_scoring_pass",
    "get_user_centroids",
    "score_event_for_user",
]
