"""Objects whose changes call for another reconcile of the newest installation."""
import kopf
from logging import Logger
from ecoperator.handlers.installation import latest_installation_name, request_reconciliation
from ecoperator.resources.charts import CHART_GROUP, CHART_PLURAL, CHART_VERSION
from ecoperator.resources.upgrade import PLAN_GROUP, PLAN_PLURAL, PLAN_VERSION


async def reconcile_latest(source: str, logger: Logger) -> None:
    name = await latest_installation_name()
    if name is None:
        return
    logger.debug(f"{source} changed, requesting reconcile of {name}")
    await request_reconciliation(name)


def _relevant(**kwargs) -> bool:
    # the initial listing is covered by the installation resume handler
    return kwargs.get("type") is not None


@kopf.on.event("", "v1", "nodes", when=_relevant)
async def on_node_event(name, logger: Logger, **kwargs):
    await reconcile_latest(f"node {name}", logger)


@kopf.on.event(PLAN_GROUP, PLAN_VERSION, PLAN_PLURAL, when=_relevant)
async def on_plan_event(name, logger: Logger, **kwargs):
    await reconcile_latest(f"plan {name}", logger)


@kopf.on.event(CHART_GROUP, CHART_VERSION, CHART_PLURAL, when=_relevant)
async def on_chart_event(name, logger: Logger, **kwargs):
    await reconcile_latest(f"chart {name}", logger)
