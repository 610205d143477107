"""Meter core library — consulting-hours tracking, Pomodoro and invoicing.

Public API re-exports for convenient imports:
    from meter import Store, Session, aggregate_invoice, load_config, ...
"""

# Workspace & config
from meter.workspace import (
    Config,
    data_root,
    config_path,
    hooks_config_path,
    log_path,
    load_config,
    write_default_config,
    get_user_timezone,
    now_local,
    setup_logging,
)

# Models
from meter.models import (
    Entry,
    Project,
    Client,
    InvoiceSettings,
    PomodoroConfig,
    InvoiceRecord,
    utcnow,
)

# Store
from meter.store import Store, StoreError

# Pomodoro
from meter.pomodoro import (
    PomodoroState,
    PomodoroEvent,
    PomodoroTimer,
    Notice,
    format_remaining,
)

# Invoicing
from meter.invoice import (
    ProjectRate,
    ProjectLine,
    InvoiceSummary,
    aggregate_invoice,
    due_days,
    generate_invoice,
    project_rates,
)
from meter.render import RenderError, render_text, write_invoice

# Session
from meter.session import Session
from meter.notify import Notifier, DesktopNotifier, NullNotifier
from meter.hooks import run_hooks
