"""CLI: click-based command-line interface."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click

from clawshield.config import load_config
from clawshield.discovery import discover_skills, skill_for_path
from clawshield.exceptions import ClawShieldError, PolicyError, SkillNotFoundError
from clawshield.gate import preflight as preflight_decision
from clawshield.guard import audit
from clawshield.guard.config import AuditLevel
from clawshield.guard.launcher import run_skill
from clawshield.models import AuditAction, AuditResult, DirectoryMode
from clawshield.policy import PolicyManager
from clawshield.report import (
    render_audit_json,
    render_audit_text,
    render_json,
    render_policy_text,
    render_text,
)
from clawshield.scanner.rules import resolve_rules
from clawshield.scanner.scanner import scan_skill

EXIT_GATE_FAILED = 2


@click.group()
@click.option("-v", "--verbose", is_flag=True, default=False, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """ClawShield: risk scanning and runtime guarding for agent skills."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _fail(message: str, code: int = 1) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


# ---------------------------------------------------------------------------
# scan / preflight
# ---------------------------------------------------------------------------


def _scan(path: str, rulesets: tuple[str, ...], behavior: bool):
    skill = skill_for_path(path)
    rules = resolve_rules(list(rulesets)) if rulesets else None
    try:
        result = scan_skill(skill, rules=rules, include_behavior=behavior)
    except SkillNotFoundError as exc:
        _fail(str(exc))
    return skill, result


@main.command()
@click.argument("path", type=click.Path())
@click.option("--format", "fmt", default="text",
              type=click.Choice(["text", "json"], case_sensitive=False),
              help="Output format.")
@click.option("--json-out", "json_out", default=None, type=click.Path(),
              help="Write JSON report to file.")
@click.option("--ruleset", "rulesets", multiple=True,
              help="Ruleset folder path or built-in name (repeatable).")
@click.option("--no-behavior", "no_behavior", is_flag=True, default=False,
              help="Ignore runtime history from the audit trail.")
@click.option("--fail-on", "fail_on", default=None,
              type=click.Choice(["sandbox", "block"], case_sensitive=False),
              help="Exit 2 when the recommendation reaches this tier.")
def scan(
    path: str,
    fmt: str,
    json_out: str | None,
    rulesets: tuple[str, ...],
    no_behavior: bool,
    fail_on: str | None,
) -> None:
    """Scan a skill folder and print its risk report."""
    skill, result = _scan(path, rulesets, not no_behavior)
    audit.log_scan(skill.id, skill.name, result.score, sorted(result.categories()))

    click.echo(render_json(result, skill) if fmt == "json" else render_text(result, skill))
    if json_out:
        Path(json_out).write_text(render_json(result, skill), encoding="utf-8")
        click.echo(f"JSON report written to {json_out}", err=True)

    tiers = ["sandbox", "block"]
    if fail_on and result.recommendation.value in tiers[tiers.index(fail_on):]:
        sys.exit(EXIT_GATE_FAILED)


@main.command()
@click.argument("path", type=click.Path())
@click.option("--format", "fmt", default="text",
              type=click.Choice(["text", "json"], case_sensitive=False),
              help="Output format.")
def preflight(path: str, fmt: str) -> None:
    """Scan a skill before installing it and apply the policy gate."""
    skill, result = _scan(path, (), True)
    policy = load_config().default_policy
    decision = preflight_decision(result, policy)

    audit.write_audit_entry(
        AuditAction.SCAN,
        AuditResult.SUCCESS if decision.can_install else AuditResult.BLOCKED,
        details={"score": result.score, "canInstall": decision.can_install},
        skill_id=skill.id,
        skill_name=skill.name,
    )
    if not decision.can_install:
        audit.log_block(skill.id, skill.name, decision.block_reason or "")

    if fmt == "json":
        click.echo(render_json(result, skill, decision))
    else:
        click.echo(render_text(result, skill, decision))
    if not decision.can_install:
        sys.exit(EXIT_GATE_FAILED)


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@main.command(context_settings={"ignore_unknown_options": True})
@click.argument("path", type=click.Path())
@click.option("-e", "--entry", default=None,
              help="Entry file relative to the skill (overrides SKILL.md).")
@click.option("--audit", "audit_level", default="blocked",
              type=click.Choice([lvl.value for lvl in AuditLevel], case_sensitive=False),
              help="Record blocked operations only, or every decision.")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def run(path: str, entry: str | None, audit_level: str, args: tuple[str, ...]) -> None:
    """Run a skill's Python entry point under the runtime guard."""
    policy = load_config().default_policy
    try:
        code = run_skill(path, policy=policy, entry=entry, args=list(args), audit_level=audit_level)
    except ClawShieldError as exc:
        _fail(str(exc))
    if code != 0:
        click.echo(f"Skill exited with code {code}", err=True)
    sys.exit(code)


# ---------------------------------------------------------------------------
# skills
# ---------------------------------------------------------------------------


@main.group()
def skills() -> None:
    """List and toggle discovered skills."""


@skills.command("list")
def skills_list() -> None:
    """List managed and workspace skills."""
    cfg = load_config()
    found = discover_skills(cfg.openclaw_path, cfg.workspace_paths)
    if not found:
        click.echo("No skills found.")
        return
    for s in found:
        state = "enabled" if cfg.is_skill_enabled(s.id) else "disabled"
        click.echo(f"{s.id}  {s.name:<24} {s.source:<10} {state}")


def _toggle(path: str, enabled: bool) -> None:
    skill = skill_for_path(path)
    PolicyManager().set_skill_enabled(skill.id, skill.name, enabled)
    click.echo(f"{skill.name}: {'enabled' if enabled else 'disabled'}")


@skills.command("enable")
@click.argument("path", type=click.Path(exists=True, file_okay=False))
def skills_enable(path: str) -> None:
    """Enable the skill at PATH."""
    _toggle(path, True)


@skills.command("disable")
@click.argument("path", type=click.Path(exists=True, file_okay=False))
def skills_disable(path: str) -> None:
    """Disable the skill at PATH."""
    _toggle(path, False)


# ---------------------------------------------------------------------------
# policy
# ---------------------------------------------------------------------------


@main.group()
def policy() -> None:
    """Show and edit the default policy."""


@policy.command("show")
@click.option("--format", "fmt", default="text",
              type=click.Choice(["text", "json"], case_sensitive=False))
def policy_show(fmt: str) -> None:
    """Print the default policy."""
    current = PolicyManager().policy
    if fmt == "json":
        click.echo(json.dumps(current.to_dict(), indent=2))
    else:
        click.echo(render_policy_text(current))


@policy.command("set")
@click.option("--block-shell/--allow-shell", default=None)
@click.option("--block-secrets/--allow-secrets", default=None)
@click.option("--block-network/--allow-network", default=None)
@click.option("--block-fs-write/--allow-fs-write", default=None)
def policy_set(
    block_shell: bool | None,
    block_secrets: bool | None,
    block_network: bool | None,
    block_fs_write: bool | None,
) -> None:
    """Change the policy's blocking gates."""
    fields = {
        "block_shell": block_shell,
        "block_secrets": block_secrets,
        "block_network": block_network,
        "block_fs_write": block_fs_write,
    }
    changes = {k: v for k, v in fields.items() if v is not None}
    if not changes:
        _fail("Nothing to change; pass at least one --block-*/--allow-* flag.")
    try:
        updated = PolicyManager().update_policy(**changes)
    except PolicyError as exc:
        _fail(str(exc))
    click.echo(render_policy_text(updated))


@policy.command("allow-dir")
@click.argument("path")
@click.option("--mode", default=DirectoryMode.READ.value,
              type=click.Choice([m.value for m in DirectoryMode]))
def policy_allow_dir(path: str, mode: str) -> None:
    """Add PATH to the directory allow-list (or change its mode)."""
    resolved = str(Path(path).expanduser().resolve())
    PolicyManager().add_allowed_dir(resolved, mode)
    click.echo(f"Allowed {resolved} [{mode}]")


@policy.command("deny-dir")
@click.argument("path")
def policy_deny_dir(path: str) -> None:
    """Remove PATH from the directory allow-list."""
    resolved = str(Path(path).expanduser().resolve())
    PolicyManager().remove_allowed_dir(resolved)
    click.echo(f"Removed {resolved}")


@policy.command("allow-domain")
@click.argument("domain")
def policy_allow_domain(domain: str) -> None:
    """Add DOMAIN (and its subdomains) to the network allow-list."""
    PolicyManager().add_allowed_domain(domain.lower())
    click.echo(f"Allowed {domain.lower()}")


@policy.command("deny-domain")
@click.argument("domain")
def policy_deny_domain(domain: str) -> None:
    """Remove DOMAIN from the network allow-list."""
    PolicyManager().remove_allowed_domain(domain.lower())
    click.echo(f"Removed {domain.lower()}")


# ---------------------------------------------------------------------------
# audit
# ---------------------------------------------------------------------------


@main.group("audit")
def audit_group() -> None:
    """Inspect the audit trail."""


@audit_group.command("show")
@click.option("--limit", default=50, show_default=True, type=int)
@click.option("--since", default=None, help="15m | 24h | 7d | ISO-8601 timestamp")
@click.option("--blocked", "only_blocked", is_flag=True, default=False,
              help="Only blocked entries.")
@click.option("--format", "fmt", default="text",
              type=click.Choice(["text", "json"], case_sensitive=False))
def audit_show(limit: int, since: str | None, only_blocked: bool, fmt: str) -> None:
    """Show the most recent audit entries, newest first."""
    if since or only_blocked:
        entries = audit.read_audit_entries(since=since, only_blocked=only_blocked)
        entries = list(reversed(entries))[:limit]
    else:
        entries = audit.read_recent_entries(limit)
    click.echo(render_audit_json(entries) if fmt == "json" else render_audit_text(entries))


@audit_group.command("clear")
@click.confirmation_option(prompt="Delete all audit entries?")
def audit_clear() -> None:
    """Truncate the audit trail."""
    audit.clear_audit_log()
    click.echo("Audit trail cleared.")
