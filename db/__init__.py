from .db import (
    Base,
    create_all,
    dispose_engine,
    get_plan_schedule,
    upsert_plan_schedule,
    delete_plan_schedule,
    get_state,
    set_state,
    delete_state,
    insert_daily_trigger,
    delete_daily_trigger,
    list_daily_triggers,
    claim_trigger_firing,
    add_opt_out,
    remove_opt_out,
    is_opted_out,
)  # noqa: F401
