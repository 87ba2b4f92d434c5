# tests/unit/core/test_contract_validation.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import pytest
from hypothesis import given
from hypothesis import strategies as st

from slotwise.core.constants import ACTION_LOAD_EXT, ACTION_MOUNT_EXT, ACTION_UNMOUNT_EXT
from slotwise.core.errors import (
    ContractValidationError,
    ExtensionTypeError,
    ExtensionValidationError,
    UnsupportedLifecycleStageError,
)
from slotwise.core.types import Action, ActionsChain, Domain, Entry, Extension, LifecycleHook
from slotwise.core.validation import (
    MISSING_PROPERTY,
    UNHANDLED_DOMAIN_ACTION,
    UNSUPPORTED_ACTION,
    ContractValidator,
    validate_extension_type,
    validate_lifecycle_hooks,
    validate_ui_meta,
)

# -----------------------------------------------------------------------------
# STRATEGIES
# -----------------------------------------------------------------------------

ids = st.sets(st.text(alphabet="abcdefgh", min_size=1, max_size=4), max_size=6)


def _domain(shared=(), actions=(), extensions_actions=()):
    return Domain(
        id="d",
        shared_properties=list(shared),
        actions=list(actions),
        extensions_actions=list(extensions_actions),
    )


# -----------------------------------------------------------------------------
# CONTRACT RULES
# -----------------------------------------------------------------------------


def test_matching_contract_is_valid():
    entry = Entry(id="e", required_properties=["p"], actions=["out"], domain_actions=["in"])
    domain = _domain(shared=["p", "q"], actions=["in"], extensions_actions=["out", "other"])

    result = ContractValidator().validate(entry, domain)

    assert result.valid
    assert result.errors == []


@pytest.mark.parametrize(
    "entry, domain, expected",
    [
        (Entry(id="e", required_properties=["p"]), _domain(), MISSING_PROPERTY),
        (Entry(id="e", actions=["out"]), _domain(), UNSUPPORTED_ACTION),
        (Entry(id="e"), _domain(actions=["in"]), UNHANDLED_DOMAIN_ACTION),
    ],
)
def test_single_rule_violation_yields_one_error(entry, domain, expected):
    result = ContractValidator().validate(entry, domain)

    assert not result.valid
    assert [e.type for e in result.errors] == [expected]


def test_all_violations_are_collected():
    entry = Entry(id="e", required_properties=["p"], actions=["out"])
    domain = _domain(actions=["in"])

    with pytest.raises(ContractValidationError) as exc_info:
        ContractValidator().assert_valid(entry, domain)

    assert [e.type for e in exc_info.value.errors] == [
        MISSING_PROPERTY,
        UNSUPPORTED_ACTION,
        UNHANDLED_DOMAIN_ACTION,
    ]


def test_lifecycle_actions_are_exempt_from_domain_action_rule():
    entry = Entry(id="e", domain_actions=[])
    domain = _domain(actions=[ACTION_LOAD_EXT, ACTION_MOUNT_EXT, ACTION_UNMOUNT_EXT])

    assert ContractValidator().validate(entry, domain).valid


def test_optional_properties_are_not_required():
    entry = Entry(id="e", optional_properties=["missing"])
    assert ContractValidator().validate(entry, _domain()).valid


@pytest.mark.property
@given(shared=ids, required=ids, accepted=ids, emitted=ids, domain_actions=ids, handled=ids)
def test_error_count_matches_subset_differences(shared, required, accepted, emitted, domain_actions, handled):
    entry = Entry(
        id="e",
        required_properties=sorted(required),
        actions=sorted(emitted),
        domain_actions=sorted(handled),
    )
    domain = _domain(shared=sorted(shared), actions=sorted(domain_actions), extensions_actions=sorted(accepted))

    result = ContractValidator().validate(entry, domain)

    expected = len(required - shared) + len(emitted - accepted) + len(domain_actions - handled)
    assert len(result.errors) == expected
    assert result.valid == (expected == 0)


# -----------------------------------------------------------------------------
# EXTENSION TYPE
# -----------------------------------------------------------------------------


def test_domain_without_type_constraint_accepts_any(type_system):
    validate_extension_type(type_system, _domain(), Extension(id="anything", domain="d", entry="e"))


def test_extension_type_mismatch_raises(type_system):
    domain = Domain(id="d", extensions_type_id="base.v1~acme.menu.")
    with pytest.raises(ExtensionTypeError):
        validate_extension_type(type_system, domain, Extension(id="base.v1~acme.other.x.v1", domain="d", entry="e"))


def test_extension_type_match_passes(type_system):
    domain = Domain(id="d", extensions_type_id="base.v1~acme.menu.")
    validate_extension_type(type_system, domain, Extension(id="base.v1~acme.menu.x.v1", domain="d", entry="e"))


def test_type_query_failure_is_a_type_resolution_error(type_system):
    type_system.broken.add("x~a.b.c")
    domain = Domain(id="d", extensions_type_id="x~")

    with pytest.raises(ExtensionTypeError, match="type resolution error"):
        validate_extension_type(type_system, domain, Extension(id="x~a.b.c", domain="d", entry="e"))


# -----------------------------------------------------------------------------
# LIFECYCLE HOOKS AND UI META
# -----------------------------------------------------------------------------


def _hook(stage):
    return LifecycleHook(stage=stage, actions_chain=ActionsChain(action=Action(type="t", target="x")))


def test_hooks_on_supported_stages_pass():
    validate_lifecycle_hooks("e", [_hook("s1"), _hook("s2")], ["s1", "s2"])
    validate_lifecycle_hooks("e", None, [])


def test_hook_on_unsupported_stage_raises():
    with pytest.raises(UnsupportedLifecycleStageError) as exc_info:
        validate_lifecycle_hooks("e", [_hook("s1"), _hook("nope")], ["s1"])
    assert exc_info.value.stage_id == "nope"


def test_ui_meta_required_when_domain_has_schema(type_system):
    domain = Domain(id="d", ui_meta_schema={"required": ["label"]})

    with pytest.raises(ExtensionValidationError):
        validate_ui_meta(type_system, domain, Extension(id="x", domain="d", entry="e"))
    with pytest.raises(ExtensionValidationError) as exc_info:
        validate_ui_meta(type_system, domain, Extension(id="x", domain="d", entry="e", ui_meta={}))
    assert exc_info.value.errors[0].keyword == "required"

    validate_ui_meta(type_system, domain, Extension(id="x", domain="d", entry="e", ui_meta={"label": "Hi"}))
