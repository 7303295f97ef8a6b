"""
Complete system walkthrough demonstrating the alert pipeline.

This script exercises:
1. Configuration loading
2. Vitals ingestion and threshold classification
3. Preference gating (alert-type toggles, quiet hours)
4. Fall detection and escalation to emergency contacts
5. Acknowledgement, queries and retention cleanup

Run with: uv run python demo_system.py
"""

import asyncio
from datetime import UTC, datetime

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from alert_engine.config import get_config
from alert_engine.domain.models import Channel, NotificationMessage
from alert_engine.services.engine import AlertEngine

console = Console()

USER = "demo-user"

# Short escalation delay so the demo finishes in seconds
DEMO_ESCALATION = {"enabled": True, "delay_minutes": 0.02, "max_attempts": 2}


class ConsoleNotifier:
    """Notifier that prints each delivery instead of calling a gateway."""

    def __init__(self) -> None:
        self.delivered: list[tuple[Channel, NotificationMessage]] = []

    async def send(self, user_id: str, channel: Channel, message: NotificationMessage) -> bool:
        self.delivered.append((channel, message))
        to = f" -> {message.recipient.name}" if message.recipient else ""
        console.print(f"  📨 [{channel.value}{to}] {message.text}", style="magenta")
        return True


def reading(temperature: float, heart_rate: float, spo2: float) -> dict:
    return {
        "userId": USER,
        "userEmail": f"{USER}@example.com",
        "sensorData": {
            "timestamp": datetime.now(UTC).isoformat(),
            "temperature": temperature,
            "humidity": 60.0,
            "heartRate": heart_rate,
            "spO2": spo2,
        },
    }


async def demo_configuration() -> bool:
    console.print(Panel("🔧 Configuration", style="blue"))

    config = get_config()
    table = Table(title="Alerting Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Environment", config.environment)
    table.add_row("Timezone", config.alerting.timezone)
    table.add_row("Retention (days)", str(config.alerting.retention_days))
    table.add_row("History limit", str(config.alerting.history_limit))
    table.add_row("Log format", config.logging.format)
    console.print(table)
    return True


async def demo_vitals(engine: AlertEngine) -> bool:
    console.print(Panel("📊 Vitals Ingestion", style="blue"))

    scenarios = [
        ("Resting", reading(36.7, 72, 98)),
        ("Mild fever", reading(38.8, 95, 96)),
        ("High fever", reading(40.0, 85, 97)),
        ("Low oxygen", reading(37.0, 88, 86)),
    ]

    table = Table(title="Classification Results")
    table.add_column("Scenario", style="cyan")
    table.add_column("Severity", style="white")
    table.add_column("Alert", style="yellow")
    table.add_column("Notified", style="green")

    for name, payload in scenarios:
        result = await engine.ingest_vitals(payload)
        table.add_row(
            name,
            result.verdict.overall.value.upper(),
            result.alert.id[:8] if result.alert else "-",
            "yes" if result.notification_sent else "no",
        )

    console.print(table)
    return True


async def demo_preferences(engine: AlertEngine) -> bool:
    console.print(Panel("⚙️ Preference Gating", style="blue"))

    prefs = await engine.get_preferences(USER)
    settings = prefs.settings.model_dump()
    settings["alert_types"]["critical_vitals"] = False
    await engine.update_preferences(USER, settings)

    result = await engine.ingest_vitals(reading(40.2, 135, 90))
    console.print(
        f"Critical vitals disabled: alert recorded={result.alert is not None}, "
        f"notified={result.notification_sent} ({result.decision.reason})",
        style="yellow",
    )

    settings["alert_types"]["critical_vitals"] = True
    settings["escalation"] = DEMO_ESCALATION
    await engine.update_preferences(USER, settings)
    await engine.add_contact(
        USER, {"name": "Maria", "phone": "+63 917 000 0001", "relationship": "Daughter"}
    )
    await engine.add_contact(
        USER, {"name": "Jose", "phone": "+63 917 000 0002", "relationship": "Son"}
    )

    summary = await engine.notification_summary(USER)
    console.print(
        f"✅ {summary.channels_enabled} channels, {summary.emergency_contacts} contacts, "
        f"escalation every {summary.escalation_delay_minutes} min",
        style="green",
    )
    return True


async def demo_fall_and_escalation(engine: AlertEngine) -> bool:
    console.print(Panel("🚨 Fall Detection and Escalation", style="blue"))

    result = await engine.ingest_fall(
        {
            "userId": USER,
            "userEmail": f"{USER}@example.com",
            "timestamp": datetime.now(UTC).isoformat(),
            "location": {"latitude": 14.5995, "longitude": 120.9842},
            "severity": "critical",
            "sensorData": {"impact_force": 3.8},
        }
    )
    alert = result.alert
    console.print(f"Fall alert {alert.id[:8]} severity={alert.severity.value}", style="red")

    delay = DEMO_ESCALATION["delay_minutes"] * 60
    console.print(f"🔄 Waiting {delay:.1f}s for the first escalation...", style="yellow")
    await asyncio.sleep(delay + 0.5)

    closed = await engine.acknowledge(alert.id)
    console.print(
        f"✅ Acknowledged after {closed.escalation_attempts_sent} escalation attempt(s); "
        f"escalation still armed: {engine.escalation.is_scheduled(alert.id)}",
        style="green",
    )
    return closed.escalation_attempts_sent >= 1


async def demo_queries(engine: AlertEngine) -> bool:
    console.print(Panel("📋 Queries and Retention", style="blue"))

    counts = await engine.unresolved_counts(USER)
    stats = await engine.stats(USER)
    report = await engine.cleanup(USER)

    table = Table(title="User Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Readings stored", str(stats.total_readings))
    table.add_row("Alerts", str(stats.total_alerts))
    table.add_row("Unresolved", f"{counts.total} (vitals {counts.vitals}, fall {counts.fall})")
    table.add_row("24h avg temperature", f"{stats.averages_24h.temperature:.1f} °C")
    table.add_row("24h avg heart rate", f"{stats.averages_24h.heart_rate} BPM")
    table.add_row("Purged by cleanup", str(report.total_deleted))
    table.add_row("Audit events", str(len(engine.audit.events())))
    console.print(table)
    return True


async def run_demo() -> None:
    """Run every demo step against one engine instance."""

    console.print(Panel("🩺 Vital Signs Alert Engine - Demo", style="bold blue"))

    notifier = ConsoleNotifier()
    steps = [
        ("Configuration", lambda engine: demo_configuration()),
        ("Vitals Ingestion", demo_vitals),
        ("Preferences", demo_preferences),
        ("Fall and Escalation", demo_fall_and_escalation),
        ("Queries", demo_queries),
    ]

    results = []
    async with AlertEngine(notifier=notifier) as engine:
        for step_name, step in steps:
            console.print(f"\n{'=' * 60}")
            try:
                results.append((step_name, await step(engine)))
            except Exception as e:
                console.print(f"❌ {step_name} failed: {e}", style="red")
                results.append((step_name, False))

    console.print(f"\n{'=' * 60}")
    summary_table = Table(title="Demo Results")
    summary_table.add_column("Step", style="cyan")
    summary_table.add_column("Result", style="white")
    for step_name, ok in results:
        summary_table.add_row(step_name, "✅ PASSED" if ok else "❌ FAILED")
    console.print(summary_table)
    console.print(f"\n🎯 {len(notifier.delivered)} notifications delivered")


if __name__ == "__main__":
    try:
        asyncio.run(run_demo())
    except KeyboardInterrupt:
        console.print("\n👋 Demo stopped by user", style="yellow")
