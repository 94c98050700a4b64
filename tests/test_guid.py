from __future__ import annotations

import pytest

from epolicy.utils.guid import extract_guid, same_guid, sanitize_guid

GUID = "0f8fad5b-d9cb-469f-a165-70867728950e"
SUBSCRIPTION = "11111111-2222-3333-4444-555555555555"


@pytest.mark.parametrize(
    "value",
    [
        GUID,
        GUID.upper(),
        f"{{{GUID}}}",
        f"/regions/unitedstates/providers/Microsoft.PowerPlatform/enterprisePolicies/{GUID}",
        (
            f"/subscriptions/{SUBSCRIPTION}/resourceGroups/rg/providers/"
            f"Microsoft.PowerPlatform/enterprisePolicies/{GUID}"
        ),
    ],
)
def test_extract_guid_is_stable_across_shapes(value):
    assert extract_guid(value) == GUID


def test_extract_guid_skips_subscription_segment():
    arm_id = (
        f"/subscriptions/{SUBSCRIPTION}/resourceGroups/rg/providers/"
        "Microsoft.PowerPlatform/enterprisePolicies/ep-test-01"
    )

    assert extract_guid(arm_id) is None


def test_extract_guid_uses_first_value_with_a_guid():
    assert extract_guid(None, "", "ep-test-01", GUID) == GUID


def test_sanitize_guid_strips_outer_braces_only():
    assert sanitize_guid(f"  {{{GUID}}} ") == GUID
    assert sanitize_guid("a{b}c") == "a{b}c"


def test_same_guid_compares_canonical_form():
    assert same_guid(GUID.upper(), f"/enterprisePolicies/{GUID}")
    assert not same_guid(GUID, SUBSCRIPTION)
    assert not same_guid(None, GUID)
