import asyncio
import logging
import sys
from argparse import ArgumentParser

from agentflow.config.settings import load_config
from agentflow.outcome import Completed, Interrupted, RunOutcome
from agentflow.runtime import AgentFlow
from agentflow.tracer import Tracer, YAMLExporter
from agentflow.workflows.base import WorkflowResult

logger = logging.getLogger(__name__)


def configure_logging(verbosity: int | None):
    azure_logger = logging.getLogger('azure')
    if not verbosity:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
        azure_logger.setLevel(logging.WARNING)
    else:
        level = logging.DEBUG
    logging.basicConfig(level=level)


def print_outcome(outcome: RunOutcome) -> int:
    if isinstance(outcome, Completed):
        result = outcome.result
        if isinstance(result, WorkflowResult):
            result = result.output
        print(result)
        return 0
    if isinstance(outcome, Interrupted):
        print(f"Interrupted ({outcome.interrupt.id}): {outcome.interrupt.reason}")
        return 2
    print(f"Failed: {outcome.error}", file=sys.stderr)
    return 1


async def run_agent(flow: AgentFlow, agent: str, request: str, session: str | None, user: str | None) -> int:
    executor = flow.executor(agent, request)
    if session:
        executor.with_session(session)
    if user:
        executor.with_user_context({'user_id': user})

    tracer = None
    token = None
    if flow.config.tracing.enabled:
        tracer = Tracer(YAMLExporter(flow.config.tracing.output_dir))
        token = tracer.activate()
    try:
        outcome = await executor.execute()
    finally:
        if tracer is not None:
            tracer.deactivate(token)
    return print_outcome(outcome)


async def run(ns) -> int:
    configure_logging(ns.v)
    config = load_config(ns.config)
    logger.debug(f"Loaded config: {config}")
    flow = await AgentFlow.create(config)
    try:
        match ns.command:
            case 'run':
                return await run_agent(flow, ns.agent, ns.request, ns.session, ns.user)
            case 'expire-interrupts':
                count = await flow.interrupts.expire_overdue()
                print(f"Expired {count} interrupt(s)")
                return 0
            case 'approve':
                interrupt = await flow.interrupts.approve(ns.interrupt_id, resolved_by=ns.by)
                print(f"Interrupt {interrupt.id} {interrupt.status.value}")
                return 0
            case 'reject':
                interrupt = await flow.interrupts.reject(ns.interrupt_id, ns.reason, resolved_by=ns.by)
                print(f"Interrupt {interrupt.id} {interrupt.status.value}")
                return 0
    finally:
        await flow.close()
    return 1


def build_parser() -> ArgumentParser:
    parser = ArgumentParser('agentflow')
    parser.add_argument('--config', required=True, help="Path to the configuration file")
    parser.add_argument('-v', action='count', help="Verbosity level. -v for INFO, -vv for DEBUG")
    commands = parser.add_subparsers(dest='command', required=True)

    run_parser = commands.add_parser('run', help="Run an agent once and print its outcome")
    run_parser.add_argument('agent', help="Registered agent name")
    run_parser.add_argument('request', help="Input passed to the agent")
    run_parser.add_argument('--session', help="Continue an existing session")
    run_parser.add_argument('--user', help="User id the run belongs to")

    commands.add_parser('expire-interrupts', help="Expire overdue pending interrupts")

    approve_parser = commands.add_parser('approve', help="Approve a pending interrupt")
    approve_parser.add_argument('interrupt_id')
    approve_parser.add_argument('--by', help="Who resolved it")

    reject_parser = commands.add_parser('reject', help="Reject a pending interrupt")
    reject_parser.add_argument('interrupt_id')
    reject_parser.add_argument('--reason')
    reject_parser.add_argument('--by', help="Who resolved it")
    return parser


if __name__ == "__main__":
    ns = build_parser().parse_args()
    sys.exit(asyncio.run(run(ns)))
