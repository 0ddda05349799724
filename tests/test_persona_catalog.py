import pytest

from decision_studio.personas.registry import PersonaCatalog

BAKERY_YAML = """\
persona: bakery
category: food_and_dining
display_name: Artisan Bakery
description: Neighborhood bakery.
key_categories: [Bread]
channels: [In-Store]
baseline_kpis:
  average_ticket: 14.0
sample_decisions: []
baseline_assumptions: {}
"""


def test_ships_four_personas(persona_catalog):
    assert persona_catalog.count() == 4
    assert {p.persona for p in persona_catalog.list_all()} == {
        "grocery",
        "quick_serve_restaurant",
        "convenience_store",
        "specialty_retail",
    }


def test_lookup_returns_full_context(persona_catalog):
    grocery = persona_catalog.lookup("grocery")

    assert grocery.display_name == "Grocery Retail"
    assert "Beverages" in grocery.key_categories
    assert grocery.baseline_kpis["gross_margin_percent"] == 28.5
    assert "price_elasticity" in grocery.baseline_assumptions


def test_lookup_unknown_persona_raises(persona_catalog):
    with pytest.raises(KeyError):
        persona_catalog.lookup("department_store")
    assert persona_catalog.get("department_store") is None


def test_sample_decision_index_wraps(persona_catalog):
    samples = persona_catalog.lookup("grocery").sample_decisions

    assert persona_catalog.sample_decision("grocery") == samples[0]
    assert persona_catalog.sample_decision("grocery", len(samples)) == samples[0]
    assert persona_catalog.sample_decision("grocery", len(samples) + 2) == samples[2]
    assert persona_catalog.sample_decision("grocery", -1) == samples[1]


def test_summaries_carry_sample_decisions(persona_catalog):
    summaries = {s.persona: s for s in persona_catalog.list_summaries()}

    assert summaries["grocery"].sample_decisions


def test_custom_definitions_dir(tmp_path):
    (tmp_path / "bakery.yaml").write_text(BAKERY_YAML)
    (tmp_path / "broken.yaml").write_text("persona: [not, a, string\n")
    catalog = PersonaCatalog(definitions_dir=tmp_path)

    assert catalog.count() == 1
    with pytest.raises(ValueError):
        catalog.sample_decision("bakery")


def test_env_var_overrides_definitions_dir(tmp_path, monkeypatch):
    (tmp_path / "bakery.yaml").write_text(BAKERY_YAML)
    monkeypatch.setenv("PERSONA_DEFINITIONS_DIR", str(tmp_path))

    catalog = PersonaCatalog()

    assert [p.persona for p in catalog.list_all()] == ["bakery"]


def test_reload_picks_up_new_files(tmp_path):
    catalog = PersonaCatalog(definitions_dir=tmp_path)
    assert catalog.count() == 0

    (tmp_path / "bakery.yaml").write_text(BAKERY_YAML)
    catalog.reload()

    assert catalog.count() == 1
