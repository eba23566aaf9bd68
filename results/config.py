"""
Configuration settings for the results app.

These values can be overridden in Django settings by prefixing with RESULTS_.
For example, to change the continuous assessment cap:
    RESULTS_CA_MAX = 30

All configuration values are lazily loaded to avoid Django setup issues.
"""


def _get_setting(name, default):
    """Get a results setting from Django settings or use default."""
    from django.conf import settings
    return getattr(settings, f'RESULTS_{name}', default)


_DEFAULTS = {
    # Component score caps (CA + exam = 100)
    'CA_MAX': 40,
    'EXAM_MAX': 60,

    # Report card fallbacks
    'DEFAULT_COMMENT': 'No comment yet.',
    'DEFAULT_RANK': '-',

    # Grading system lookup cache (seconds)
    'GRADING_CACHE_TIMEOUT': 300,

    # Bulk operation settings
    'BULK_UPDATE_BATCH_SIZE': 500,

    # Celery task settings
    'TASK_MAX_RETRIES': 3,
    'TASK_RETRY_DELAY': 60,  # seconds
}


class _ConfigProxy:
    """
    Lazy configuration proxy that loads settings only when accessed.
    This avoids Django setup issues during module import.
    """

    def __getattr__(self, name):
        if name in _DEFAULTS:
            return _get_setting(name, _DEFAULTS[name])
        raise AttributeError(f"Unknown config setting: {name}")


_config = _ConfigProxy()


def __getattr__(name):
    """Enable module-level attribute access via the config proxy."""
    return getattr(_config, name)
