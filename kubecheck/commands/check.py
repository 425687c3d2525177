import json
import logging
from typing import Optional

import typer

from kubecheck.config import CheckConfig
from kubecheck.modules import CheckOrchestrator, LogReporter, Reporter

logger = logging.getLogger("kubecheck.commands.check")


def build_config(
    config_file: Optional[str] = None,
    pre_tap: Optional[bool] = None,
    namespace: Optional[str] = None,
    kubeconfig: Optional[str] = None,
    context: Optional[str] = None,
) -> CheckConfig:
    return CheckConfig.load(
        config_file,
        pre_tap=pre_tap,
        resources_namespace=namespace,
        kubeconfig_path=kubeconfig,
        kube_context=context,
    )


def check(
    pre_tap: bool = typer.Option(False, "--pre-tap", help="Check the cluster before installation for potential problems"),
    namespace: Optional[str] = typer.Option(None, "--namespace", "-n", help="Namespace of the installation"),
    kubeconfig: Optional[str] = typer.Option(None, "--kubeconfig", help="Path to kubeconfig"),
    context: Optional[str] = typer.Option(None, "--context", help="Kubeconfig context to use"),
    config_file: Optional[str] = typer.Option(None, "--config", help="Path to a kubecheck YAML config file"),
    output: str = typer.Option("text", "--output", "-o", help="Output format: text or json"),
):
    """Check the installation for potential problems."""
    if output not in ("text", "json"):
        typer.echo(f"❌ Unsupported output format '{output}'", err=True)
        raise typer.Exit(code=2)

    try:
        config = build_config(config_file, pre_tap or None, namespace, kubeconfig, context)
    except (FileNotFoundError, ValueError) as e:
        typer.echo(f"❌ Invalid configuration: {e}", err=True)
        raise typer.Exit(code=2)

    # --debug wins over the configured level
    if logging.getLogger().level > logging.DEBUG:
        logging.getLogger("kubecheck").setLevel(config.log_level)

    if output == "text":
        reporter = LogReporter()
        logger.info(f"Installation checks ({config.mode.value})\n===================")
    else:
        reporter = Reporter()

    orchestrator = CheckOrchestrator(config, reporter=reporter)
    passed = orchestrator.run(config.mode)

    if output == "json":
        typer.echo(json.dumps({
            "mode": config.mode.value,
            "passed": passed,
            "results": [r.to_dict() for r in orchestrator.results],
        }, indent=2))

    if not passed:
        raise typer.Exit(code=1)
