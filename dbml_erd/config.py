from dataclasses import dataclass


@dataclass(frozen=True)
class DiagramConfig:
    debug: bool = False
    log_level: str = "INFO"
    debounce_ms: int = 500  # coalesce keystrokes into one re-parse
    positions_dir: str = ".dbml_positions"
    default_direction: str = "TB"
    history_limit: int = 100
