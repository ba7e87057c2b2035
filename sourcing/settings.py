"""
Runtime settings for the sourcing pipeline.

Defaults live here; any of them can be overridden per deployment with a
SourcingSettings row (setting_key / setting_value), read fresh on every call.
"""

import logging

DEFAULTS = {
    'costo_sourcing': '50',
    'costo_desbloqueo': '2',
    'max_candidatos': '10',
    'pool_size': '100',
    'max_candidatos_analisis': '50',
    'min_candidatos_analisis': '10',
    'max_prompt_length': '120000',
    'dry_run_daily_limit': '20',
    'dry_run_per_vacancy_limit': '3',
    'rate_limit_window_hours': '24',
    'ranking_model': 'gpt-4o-mini',
    'ranking_temperature': '0.3',
    'ranking_max_tokens': '4000',
    'ranking_max_retries': '2',
    'ranking_timeout_seconds': '90',
    'debit_max_attempts': '2',
}


def get_setting(key: str, default: str = None) -> str:
    """Get configuration value from database, falling back to module defaults"""
    from models import SourcingSettings

    row = SourcingSettings.query.filter_by(setting_key=key).first()
    if row and row.setting_value not in (None, ''):
        return row.setting_value.strip()
    if default is not None:
        return default
    return DEFAULTS.get(key)


def get_int_setting(key: str) -> int:
    value = get_setting(key)
    try:
        return int(value)
    except (ValueError, TypeError):
        logging.warning(f"Invalid integer for setting {key}: {value!r}, using default")
        return int(DEFAULTS[key])


def get_float_setting(key: str) -> float:
    value = get_setting(key)
    try:
        return float(value)
    except (ValueError, TypeError):
        logging.warning(f"Invalid float for setting {key}: {value!r}, using default")
        return float(DEFAULTS[key])


def set_setting(key: str, value) -> None:
    """Upsert a setting row. Caller commits."""
    from extensions import db
    from models import SourcingSettings

    row = SourcingSettings.query.filter_by(setting_key=key).first()
    if row:
        row.setting_value = str(value)
    else:
        db.session.add(SourcingSettings(setting_key=key, setting_value=str(value)))
