import typer
from rich.console import Console
from rich.panel import Panel
from rich.text import Text
from rich.table import Table
from typing import Optional
import httpx
import subprocess
import sys
from pathlib import Path

console = Console()

DEFAULT_API_URL = "http://localhost:8000"
MONITORING_PATH = "/api/admin/security-monitoring"

SEVERITY_STYLES = {
    "low": "green",
    "medium": "yellow",
    "high": "bold red",
    "critical": "bold white on red",
}

app = typer.Typer(
    name="secmon",
    help="Security Monitor - operator commands for a running monitoring API",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich"
)


def gradient_text(text: str):
    colors = ["#00BFFF", "#1E90FF", "#4169E1", "#6A5ACD", "#7B68EE", "#9370DB"]

    gradient = Text()
    for i, char in enumerate(text):
        if char == " ":
            gradient.append(char)
            continue

        progress = i / max(len(text) - 1, 1)
        color = colors[int(progress * (len(colors) - 1))]
        gradient.append(char, style=f"bold {color}")

    return gradient


def print_banner():
    console.print()
    console.print(gradient_text("Security Monitor"))
    console.print()


def get_client(api_url: str, admin_key: Optional[str] = None) -> httpx.Client:
    headers = {"X-Admin-Key": admin_key} if admin_key else {}
    return httpx.Client(base_url=api_url, headers=headers, timeout=5.0)


def request_api(
    api_url: str,
    admin_key: Optional[str],
    method: str,
    path: str = "",
    **kwargs
) -> Optional[dict]:
    """Call the monitoring API; print the failure and return None on error."""
    try:
        with get_client(api_url, admin_key) as client:
            response = client.request(method, f"{MONITORING_PATH}{path}", **kwargs)
    except httpx.ConnectError:
        console.print("[bold red]ERROR[/bold red] Cannot connect to the API\n")
        console.print("[dim]Make sure the server is running with [bold]secmon dev[/bold][/dim]\n")
        return None
    except httpx.HTTPError as e:
        console.print(f"[bold red]ERROR[/bold red] {str(e)}\n")
        return None

    if response.status_code >= 400:
        try:
            detail = response.json().get("detail", response.text)
        except ValueError:
            detail = response.text
        console.print(f"[bold red]ERROR[/bold red] {response.status_code}: {detail}\n")
        return None

    return response.json()


def severity_text(severity: str) -> str:
    style = SEVERITY_STYLES.get(severity, "white")
    return f"[{style}]{severity.upper()}[/{style}]"


def run_action(api_url: str, admin_key: Optional[str], action: str, target: str, target_type: str, reason: Optional[str]):
    payload = {"action": action, "target": target, "targetType": target_type}
    if reason:
        payload["reason"] = reason

    data = request_api(api_url, admin_key, "POST", "/actions", json=payload)
    if data is None:
        raise typer.Exit(code=1)

    console.print(f"[bold green]OK[/bold green] {data.get('message', 'Done')}\n")


def print_analysis(data: dict, title: str):
    analysis = data.get("analysis", {})

    table = Table(box=None, show_header=False, padding=(0, 2))
    table.add_column("Field", style="cyan")
    table.add_column("Value", justify="right")
    for key, value in analysis.items():
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value) or "-"
        table.add_row(key.replace("_", " "), str(value))

    console.print(Panel(table, title=title, border_style="cyan", padding=(1, 2)))

    risk_factors = data.get("risk_factors", [])
    recommendations = data.get("recommendations", [])
    if risk_factors:
        console.print("\n[bold yellow]Risk factors[/bold yellow]")
        for factor in risk_factors:
            console.print(f"  [yellow]•[/yellow] {factor}")
    if recommendations:
        console.print("\n[bold]Recommendations[/bold]")
        for recommendation in recommendations:
            console.print(f"  [dim]>[/dim] {recommendation}")
    console.print()


ApiUrl = typer.Option(DEFAULT_API_URL, "--api-url", envvar="SECMON_API_URL", help="Monitoring API base URL")
AdminKey = typer.Option(None, "--admin-key", envvar="SECMON_ADMIN_KEY", help="Value for the X-Admin-Key header")


@app.command()
def dev(
    port: int = typer.Option(8000, "--port", "-p", help="Server port"),
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Server host"),
    reload: bool = typer.Option(True, "--reload/--no-reload", help="Enable auto-reload")
):
    """Start the monitoring API in development mode"""
    print_banner()

    info_table = Table(box=None, show_header=False, padding=(0, 2), show_lines=False)
    info_table.add_row("[dim]>[/dim] [bold]API:[/bold]", f"[cyan]http://localhost:{port}[/cyan]")
    info_table.add_row("[dim]>[/dim] [bold]Docs:[/bold]", f"[cyan]http://localhost:{port}/docs[/cyan]")
    info_table.add_row("[dim]>[/dim] [bold]Monitoring:[/bold]", f"[cyan]http://localhost:{port}{MONITORING_PATH}[/cyan]")

    console.print(Panel(info_table, border_style="cyan", padding=(1, 2)))
    console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")

    cmd = [sys.executable, "-m", "uvicorn", "secmon.main:app", "--host", host, "--port", str(port)]
    if reload:
        cmd.append("--reload")

    try:
        subprocess.run(cmd, cwd=Path.cwd())
    except KeyboardInterrupt:
        console.print("\n[dim]Server stopped[/dim]\n")


@app.command()
def stats(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of recent suspicious activities"),
    time_range: str = typer.Option("24h", "--range", "-r", help="1h, 6h, 24h, 7d or 30d"),
    api_url: str = ApiUrl,
    admin_key: Optional[str] = AdminKey
):
    """Show monitoring statistics and recent suspicious activities"""
    data = request_api(api_url, admin_key, "GET", params={"limit": limit, "timeRange": time_range})
    if data is None:
        raise typer.Exit(code=1)

    stats_data = data.get("stats", {})
    table = Table(box=None, show_header=True, header_style="bold cyan", padding=(0, 2))
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Tracked activities", f"[bold]{stats_data.get('total_activities', 0)}[/bold]")
    table.add_row("Blocked IPs", f"[bold red]{stats_data.get('blocked_ips', 0)}[/bold red]")
    table.add_row("Blocked users", f"[bold red]{stats_data.get('blocked_users', 0)}[/bold red]")
    table.add_row("Suspicious activities", f"[bold yellow]{stats_data.get('suspicious_activities', 0)}[/bold yellow]")
    table.add_row("Active rules", str(stats_data.get("active_rules", 0)))
    table.add_row("Active threat patterns", str(stats_data.get("active_threat_patterns", 0)))

    console.print()
    console.print(table)
    console.print()

    summary = data.get("threat_summary", {})
    last_hour = summary.get("last_hour", {})
    console.print(
        f"[bold]High risk:[/bold] {summary.get('high_risk_events', 0)}  "
        f"[bold]Critical:[/bold] {summary.get('critical_events', 0)}  "
        f"[bold]Blocked:[/bold] {summary.get('blocked_attempts', 0)}  "
        f"[dim]| last hour: {last_hour.get('events', 0)} events from {last_hour.get('unique_ips', 0)} IPs[/dim]\n"
    )

    activities = data.get("recent_activities", [])
    if not activities:
        console.print("[dim]No suspicious activity in this range[/dim]\n")
        return

    activity_table = Table(show_header=True, header_style="bold cyan", padding=(0, 1))
    activity_table.add_column("Time", style="dim", no_wrap=True)
    activity_table.add_column("Severity", justify="center")
    activity_table.add_column("Type", style="magenta")
    activity_table.add_column("IP", style="cyan")
    activity_table.add_column("Risk", justify="right")
    activity_table.add_column("Action")
    for activity in activities:
        activity_table.add_row(
            activity.get("timestamp", "")[:19],
            severity_text(activity.get("severity", "")),
            activity.get("type", ""),
            activity.get("ip_address", ""),
            str(activity.get("risk_score", 0)),
            activity.get("action_taken", ""),
        )
    console.print(activity_table)
    console.print()


@app.command()
def events(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of security events"),
    high_risk: bool = typer.Option(False, "--high-risk", help="Only events at or above the high-risk threshold"),
    api_url: str = ApiUrl,
    admin_key: Optional[str] = AdminKey
):
    """List recent security events"""
    data = request_api(
        api_url, admin_key, "GET", "/events",
        params={"limit": limit, "high_risk_only": high_risk},
    )
    if data is None:
        raise typer.Exit(code=1)

    if not data:
        console.print("[dim]No security events recorded[/dim]\n")
        return

    table = Table(show_header=True, header_style="bold cyan", padding=(0, 1))
    table.add_column("Time", style="dim", no_wrap=True)
    table.add_column("Type", style="magenta")
    table.add_column("Severity", justify="center")
    table.add_column("Risk", justify="right")
    table.add_column("Target", style="cyan")
    table.add_column("Message")
    for event in data:
        table.add_row(
            event.get("timestamp", "")[:19],
            event.get("type", ""),
            severity_text(event.get("severity", "")),
            str(event.get("risk_score", 0)),
            event.get("ip_address") or event.get("user_id") or "-",
            event.get("message", ""),
        )
    console.print(table)
    console.print()


@app.command("block-ip")
def block_ip(
    ip_address: str = typer.Argument(..., help="IP address to block"),
    reason: Optional[str] = typer.Option(None, "--reason", help="Reason recorded with the block"),
    api_url: str = ApiUrl,
    admin_key: Optional[str] = AdminKey
):
    """Block an IP address"""
    run_action(api_url, admin_key, "block_ip", ip_address, "ip", reason)


@app.command("unblock-ip")
def unblock_ip(
    ip_address: str = typer.Argument(..., help="IP address to unblock"),
    reason: Optional[str] = typer.Option(None, "--reason", help="Reason recorded with the unblock"),
    api_url: str = ApiUrl,
    admin_key: Optional[str] = AdminKey
):
    """Unblock an IP address"""
    run_action(api_url, admin_key, "unblock_ip", ip_address, "ip", reason)


@app.command("block-user")
def block_user(
    user_id: str = typer.Argument(..., help="User id to block"),
    reason: Optional[str] = typer.Option(None, "--reason", help="Reason recorded with the block"),
    api_url: str = ApiUrl,
    admin_key: Optional[str] = AdminKey
):
    """Suspend a user"""
    run_action(api_url, admin_key, "block_user", user_id, "user", reason)


@app.command("unblock-user")
def unblock_user(
    user_id: str = typer.Argument(..., help="User id to unblock"),
    reason: Optional[str] = typer.Option(None, "--reason", help="Reason recorded with the unblock"),
    api_url: str = ApiUrl,
    admin_key: Optional[str] = AdminKey
):
    """Lift a user suspension"""
    run_action(api_url, admin_key, "unblock_user", user_id, "user", reason)


@app.command("analyze-ip")
def analyze_ip(
    ip_address: str = typer.Argument(..., help="IP address to analyze"),
    api_url: str = ApiUrl,
    admin_key: Optional[str] = AdminKey
):
    """Show the behavioral analysis of an IP address"""
    data = request_api(
        api_url, admin_key, "POST", "/actions",
        json={"action": "get_ip_analysis", "target": ip_address, "targetType": "ip"},
    )
    if data is None:
        raise typer.Exit(code=1)
    print_analysis(data, f"IP {ip_address}")


@app.command("analyze-user")
def analyze_user(
    user_id: str = typer.Argument(..., help="User id to analyze"),
    api_url: str = ApiUrl,
    admin_key: Optional[str] = AdminKey
):
    """Show the behavioral analysis of a user"""
    data = request_api(
        api_url, admin_key, "POST", "/actions",
        json={"action": "get_user_analysis", "target": user_id, "targetType": "user"},
    )
    if data is None:
        raise typer.Exit(code=1)
    print_analysis(data, f"User {user_id}")


if __name__ == "__main__":
    app()
