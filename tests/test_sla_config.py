"""
Tests for SLA configuration loading, reload and reference data sync.
"""
import pytest
from sqlalchemy import select

from casetrack.core import ConfigurationException
from casetrack.escalation.models import EscalationRuleModel
from casetrack.sla.domain import SLAConfig, EscalationRuleConfig
from casetrack.sla.infrastructure import SLAConfigManager, ReferenceDataLoader

VALID = """
state_sla_hours:
  enquiry: 12
warning_lookahead_hours: 3
escalation_rules:
  - name: "Breach to manager"
    escalate_to_role: manager
"""


def test_missing_states_fall_back_to_defaults():
    config = SLAConfig(state_sla_hours={"enquiry": 12})

    assert config.hours_for("enquiry") == 12
    assert config.hours_for("manufacturing") == 168


def test_terminal_state_cannot_have_duration():
    with pytest.raises(ValueError):
        SLAConfig(state_sla_hours={"closed": 1})


def test_load_and_reload(tmp_path):
    path = tmp_path / "sla.yaml"
    path.write_text(VALID)
    manager = SLAConfigManager()

    manager.load(path)
    assert manager.version == 1
    assert manager.config.warning_lookahead_hours == 3
    assert manager.config.escalation_rules[0].escalate_after_hours == 24

    path.write_text(VALID.replace("warning_lookahead_hours: 3", "warning_lookahead_hours: 5"))
    assert manager.reload() is True
    assert manager.version == 2
    assert manager.config.warning_lookahead_hours == 5


def test_bad_reload_keeps_previous_config(tmp_path):
    path = tmp_path / "sla.yaml"
    path.write_text(VALID)
    manager = SLAConfigManager()
    manager.load(path)

    path.write_text("state_sla_hours: [not, a, mapping")
    assert manager.reload() is False

    path.write_text("warning_lookahead_hours: 0\n")
    assert manager.reload() is False

    assert manager.version == 1
    assert manager.config.state_sla_hours["enquiry"] == 12


def test_invalid_file_fails_initial_load(tmp_path):
    path = tmp_path / "sla.yaml"
    path.write_text("escalation_rules:\n  - name: missing role\n")

    with pytest.raises(ConfigurationException):
        SLAConfigManager().load(path)


def test_missing_file_uses_defaults(tmp_path):
    manager = SLAConfigManager()
    config = manager.load(tmp_path / "absent.yaml")

    assert config.warning_dedup_hours == 2
    assert [t.name for t in config.templates] == ["SLA Warning - 2 Hours", "SLA Breach Alert", "Escalation Notice"]
    manager.start_watching()
    manager.stop_watching()


async def test_reference_data_sync_is_idempotent(session, sla_config, clock, reference_data):
    assert reference_data["templates_created"] == 3
    assert reference_data["rules_created"] == 2

    again = await ReferenceDataLoader(session, clock=clock).sync(sla_config)

    assert again == {"templates_created": 0, "templates_updated": 0,
                     "rules_created": 0, "rules_updated": 0, "rules_deactivated": 0}


async def test_removed_rules_are_deactivated(session, sla_config, clock):
    trimmed = sla_config.model_copy(update={
        "escalation_rules": [
            EscalationRuleConfig(name="Breach to manager", escalate_to_role="manager", escalate_after_hours=6),
        ]
    })

    counts = await ReferenceDataLoader(session, clock=clock).sync(trimmed)

    rules = {r.name: r for r in (await session.execute(select(EscalationRuleModel))).scalars()}
    assert counts["rules_updated"] == 1
    assert counts["rules_deactivated"] == 1
    assert rules["Breach to manager"].escalate_after_hours == 6
    assert rules["High priority to director"].is_active is False
