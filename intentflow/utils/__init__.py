from .retry import compute_backoff, is_rate_limit_error, is_transient_error, schedule_retry

__all__ = ["compute_backoff", "is_rate_limit_error", "is_transient_error", "schedule_retry"]
