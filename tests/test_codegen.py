"""Tests for primitive rendering, variant fallbacks and test file generation."""

import pytest

from stepgen.core.errors import CapabilityFallback, CompilationError, UnknownVariantError
from stepgen.generators.locators import escape_string, locator_candidates, render_locator, render_value
from stepgen.generators.renderer import PrimitiveRenderer
from stepgen.generators.test_generator import TestCodeGenerator, block_id_for, to_file_slug
from stepgen.generators.variants import PROFILES, VariantContext, get_variant
from stepgen.ir import models as ir

SAVE = ir.LocatorSpec(strategy="role", value="button", name="Save")


def test_render_locator_strategies():
    assert render_locator(SAVE) == "getByRole('button', { name: 'Save' })"
    assert render_locator(ir.LocatorSpec(strategy="label", value="Email")) == "getByLabel('Email')"
    assert render_locator(ir.LocatorSpec(strategy="text", value="Hi", exact=True)) == "getByText('Hi', { exact: true })"
    assert render_locator(ir.LocatorSpec(strategy="testid", value="save-btn")) == "getByTestId('save-btn')"
    assert render_locator(ir.LocatorSpec(strategy="css", value="#main")) == "locator('#main')"


def test_strings_are_escaped():
    assert escape_string("it's") == "it\\'s"
    assert render_locator(ir.LocatorSpec(strategy="text", value="Don't")) == "getByText('Don\\'t')"


def test_render_value_kinds():
    assert render_value(ir.value_from_text("{{email}}")) == "actor.email"
    assert render_value(ir.value_from_text("$user.name")) == "testData.user.name"
    assert render_value(ir.value_from_text("${Date.now()}")) == "`${Date.now()}`"
    assert render_value(ir.value_from_text("plain")) == "'plain'"


def test_locator_candidates_add_text_fallback():
    assert locator_candidates(SAVE) == [
        "getByRole('button', { name: 'Save' })",
        "getByText('Save', { exact: true })",
    ]


def test_primitive_emissions():
    renderer = PrimitiveRenderer(get_variant("modern-esm"))
    assert renderer.render(ir.Navigate(url="/login")).code == "await page.goto('/login');"
    assert renderer.render(ir.Click(locator=SAVE)).code == "await page.getByRole('button', { name: 'Save' }).click();"
    assert renderer.render(ir.RightClick(locator=SAVE)).code == \
        "await page.getByRole('button', { name: 'Save' }).click({ button: 'right' });"
    assert renderer.render(ir.PressKey(key="Enter")).code == "await page.keyboard.press('Enter');"
    assert renderer.render(ir.WaitForTimeout(ms=500)).code == "await page.waitForTimeout(500);"
    assert renderer.render(ir.ExpectUrl(pattern="/dashboard")).code == "await expect(page).toHaveURL(/\\/dashboard/);"
    assert renderer.render(ir.ExpectTitle(title="Home")).code == "await expect(page).toHaveTitle('Home');"
    assert renderer.render(ir.Click(locator=SAVE, timeout=5000)).code == \
        "await page.getByRole('button', { name: 'Save' }).click({ timeout: 5000 });"


def test_set_clock_on_modern_variant():
    emission = PrimitiveRenderer(get_variant("modern-esm")).render(ir.SetClock(time="2024-01-01T09:00:00Z"))
    assert emission.code == "await page.clock.setFixedTime(new Date('2024-01-01T09:00:00Z'));"
    assert emission.warnings == []


def test_set_clock_falls_back_on_legacy_14():
    """Missing clock control degrades to an init script and reports it."""
    emission = PrimitiveRenderer(get_variant("legacy-14")).render(ir.SetClock(time="2024-01-01T09:00:00Z"))

    assert emission.lines[0].startswith("// STEPGEN FALLBACK: setClock needs 'clock_control'")
    assert "page.addInitScript" in emission.code
    assert "page.clock" not in emission.code
    [warning] = emission.warnings
    assert isinstance(warning, CapabilityFallback)
    assert warning.capability == "clock_control"
    assert warning.extra == {"variant": "legacy-14"}
    assert warning.to_dict()["kind"] == "unsupported-capability"


def test_aria_snapshot_fallback_asserts_visibility():
    primitive = ir.ExpectAriaSnapshot(locator=ir.LocatorSpec(strategy="role", value="navigation"), snapshot="- link")
    modern = PrimitiveRenderer(get_variant("modern-cjs")).render(primitive)
    legacy = PrimitiveRenderer(get_variant("legacy-14")).render(primitive)

    assert "toMatchAriaSnapshot(`- link`)" in modern.code
    assert "toBeVisible()" in legacy.code
    assert legacy.warnings[0].capability == "aria_snapshots"


def test_blocked_primitive_renders_failing_stub():
    emission = PrimitiveRenderer().render(ir.Blocked(reason="No pattern matches", source_text="Do the thing"))
    assert emission.lines == [
        "// STEPGEN BLOCKED: No pattern matches",
        "// Source: Do the thing",
        "throw new Error('STEPGEN BLOCKED: No pattern matches');",
    ]


def test_resilient_locators_need_locator_or():
    primitive = ir.Click(locator=SAVE)
    modern = PrimitiveRenderer(get_variant("modern-esm"), resilient_locators=True).render(primitive)
    legacy = PrimitiveRenderer(get_variant("legacy-14"), resilient_locators=True).render(primitive)

    assert ".or(page.getByText('Save', { exact: true }))" in modern.code
    assert ".or(" not in legacy.code


def test_variant_profiles_and_custom_maps():
    assert set(PROFILES) == {"modern-esm", "modern-cjs", "legacy-16", "legacy-14"}
    assert get_variant().name == "modern-esm"
    assert not get_variant("legacy-14").capabilities

    custom = VariantContext.from_mapping({"name": "modern-esm", "clock_control": False})
    assert custom.missing_for("setClock") == "clock_control"
    assert custom.has("aria_snapshots")

    with pytest.raises(UnknownVariantError):
        get_variant("netscape")


def test_full_file_render():
    generator = TestCodeGenerator()
    result = generator.render(
        [ir.Navigate(url="/login"), ir.Fill(locator=ir.LocatorSpec(strategy="label", value="Email"),
                                            value=ir.value_from_text("{{email}}"))],
        test_id="Login Flow",
        step_texts=["navigate to /login", "fill '{{email}}' in the 'Email' field"],
    )

    assert result.filename == "login-flow.spec.ts"
    assert result.code.startswith("import { test, expect } from '@playwright/test';")
    assert "// STEPGEN:BEGIN GENERATED id=test-login-flow" in result.code
    assert "async ({ page, actor })" in result.code
    assert "    // Step 1: navigate to /login" in result.code
    assert "    await page.getByLabel('Email').fill(actor.email);" in result.code
    assert result.warnings == []


def test_render_is_deterministic():
    generator = TestCodeGenerator()
    primitives = [ir.Navigate(url="/"), ir.Click(locator=SAVE)]
    assert generator.render(primitives, test_id="a").code == generator.render(primitives, test_id="a").code


def test_blocks_strategy_preserves_user_code():
    """Regenerating replaces only the managed block."""
    generator = TestCodeGenerator()
    first = generator.render([ir.Navigate(url="/old")], test_id="checkout").code
    edited = "// helper added by hand\n" + first + "\nexport const extra = 1;\n"

    second = generator.render([ir.Navigate(url="/new")], test_id="checkout", merge_target=edited)

    assert second.code.startswith("// helper added by hand\n")
    assert "export const extra = 1;" in second.code
    assert "page.goto('/new')" in second.code
    assert "page.goto('/old')" not in second.code

    third = generator.render([ir.Navigate(url="/new")], test_id="checkout", merge_target=second.code)
    assert third.code == second.code


def test_full_strategy_ignores_existing_code():
    generator = TestCodeGenerator()
    result = generator.render([ir.Reload()], test_id="x", merge_target="// mine\n", strategy="full")
    assert "// mine" not in result.code


def test_unknown_strategy_is_rejected():
    with pytest.raises(CompilationError):
        TestCodeGenerator().render([ir.Reload()], strategy="sometimes")


def test_fallback_warnings_surface_from_render():
    result = TestCodeGenerator().render([ir.SetClock(time="1700000000000")], variant=get_variant("legacy-14"))
    [warning] = result.warnings
    assert warning.primitive_type == "setClock"
    assert "1700000000000);" in result.code


def test_slugs():
    assert to_file_slug("Login: happy path!") == "login-happy-path"
    assert block_id_for("Checkout") == "test-checkout"


def test_capability_map_accepts_camel_case_and_nested_flags():
    flat = VariantContext.from_mapping({"name": "modern-esm", "clockControl": False})
    nested = VariantContext.from_mapping({"name": "modern-esm", "capabilities": {"clockControl": False}})

    assert flat == nested
    assert flat.missing_for("setClock") == "clock_control"
    assert flat.has("aria_snapshots")


def test_capability_map_reads_back_to_dict_output():
    original = get_variant("legacy-16").with_capabilities(enabled=["esm_imports"], disabled=["locator_or"])
    assert VariantContext.from_mapping(original.to_dict()) == original


def test_capability_map_rejects_unknown_keys():
    with pytest.raises(CompilationError) as excinfo:
        VariantContext.from_mapping({"name": "modern-esm", "clockKontrol": False})
    assert "clockKontrol" in str(excinfo.value)

    with pytest.raises(CompilationError):
        VariantContext.from_mapping({"capabilities": {"teleport": True}})
    with pytest.raises(CompilationError):
        VariantContext.from_mapping({"capabilities": ["clock_control"]})


def test_placeholders_in_title_are_not_substituted():
    result = TestCodeGenerator().render([ir.Reload()], test_id="x", title="Title {{STEPS}} {{FIXTURES}}")

    assert "test.describe('Title {{STEPS}} {{FIXTURES}}'" in result.code
    assert result.code.count("await page.reload();") == 1


def test_line_breaks_in_test_id_stay_inside_comments_and_strings():
    result = TestCodeGenerator().render([ir.Reload()], test_id="evil\nprocess.exit(1)")

    lines = result.code.split("\n")
    assert not any(line.lstrip().startswith("process.exit") for line in lines)
    assert "// Generated by stepgen from journey evil process.exit(1) (variant modern-esm)." in lines
