"""Security feature check."""

from __future__ import annotations

import typing as typ

from bylaw.errors import RemediationActionError

from .base import Action, CheckContext, RemediatingCheck, manual_action_required

if typ.TYPE_CHECKING:
    from bylaw.models import CheckResult


def _wanted(value: object) -> bool:
    if isinstance(value, str):
        return value.lower() == "enabled"
    return bool(value)


def _state(value: object) -> str:
    return "enabled" if value else "disabled"


class SecurityScanningCheck(RemediatingCheck):
    """Verify Dependabot alerts, secret scanning and code scanning prerequisites."""

    name = "security-scanning"
    description = "Verify repository security scanning settings"
    config_key = "security"

    async def check(self, context: CheckContext) -> CheckResult:
        """Compare the security feature state against policy."""
        config = context.setting("security") or {}
        owner, repo = context.owner_and_name
        settings = await context.client.get_security_settings(owner, repo)

        issues: list[str] = []
        actions: list[Action] = []
        current: dict[str, typ.Any] = {
            "vulnerability_alerts": settings.vulnerability_alerts,
            "secret_scanning": settings.secret_scanning,
            "secret_scanning_push_protection": settings.secret_scanning_push_protection,
            "advanced_security": settings.advanced_security,
        }

        if config.get("dependabot_alerts") is not None:
            want = _wanted(config["dependabot_alerts"])
            have = bool(settings.vulnerability_alerts)
            if want != have:
                issues.append(
                    f"Dependabot alerts should be {_state(want)} but is {_state(have)}"
                )
                actions.append({"action": "update_dependabot_alerts", "enabled": want})

        for feature, label in (
            ("secret_scanning", "Secret scanning"),
            ("secret_scanning_push_protection", "Secret scanning push protection"),
        ):
            if config.get(feature) is None:
                continue
            want = _wanted(config[feature])
            have = getattr(settings, feature) == "enabled"
            if want != have:
                issues.append(f"{label} should be {_state(want)} but is {_state(have)}")
                actions.append({"action": f"update_{feature}", "enabled": want})

        if (
            config.get("code_scanning_recommended")
            and context.repository.private
            and settings.advanced_security != "enabled"
        ):
            issues.append(
                "Code scanning requires GitHub Advanced Security to be enabled "
                "for private repositories"
            )
            actions.append(
                {
                    "action": "enable_advanced_security",
                    "reason": "Advanced Security must be enabled by an organisation owner",
                }
            )

        if _wanted(config.get("dependabot_alerts")):
            alerts = await context.client.list_vulnerability_alerts(owner, repo)
            current["open_vulnerability_alerts"] = len(alerts)
            if alerts:
                context.logger.warning(
                    "%s has %d open vulnerability alerts",
                    context.repository.full_name,
                    len(alerts),
                )

        details = {"current": current, "expected": dict(config), "actions_needed": actions}
        if not issues:
            return self.create_result(
                compliant=True,
                message="Security scanning settings are configured correctly",
                details=details,
            )
        return self.create_result(
            compliant=False,
            message=f"Security scanning issues found: {'; '.join(issues)}",
            details=details,
        )

    async def apply_action(self, context: CheckContext, action: Action) -> str | None:
        """Toggle one security feature."""
        owner, repo = context.owner_and_name
        client = context.client
        enabled = bool(action.get("enabled"))
        match action.get("action"):
            case "update_dependabot_alerts":
                await client.update_vulnerability_alerts(owner, repo, enabled=enabled)
                return f"Dependabot alerts {_state(enabled)}"
            case "update_secret_scanning":
                await client.update_secret_scanning(owner, repo, enabled=enabled)
                return f"Secret scanning {_state(enabled)}"
            case "update_secret_scanning_push_protection":
                await client.update_secret_scanning_push_protection(
                    owner, repo, enabled=enabled
                )
                return f"Secret scanning push protection {_state(enabled)}"
            case "enable_advanced_security":
                manual_action_required(action)
            case other:
                message = f"Unsupported action: {other}"
                raise RemediationActionError(message)
