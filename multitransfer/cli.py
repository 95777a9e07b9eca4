#!/usr/bin/env python
"""
Minimalist CLI for multitransfer using Click.

Usage:
    multitransfer send --contract 0x... --to 0x... --token-ids 1,2,5-7 --rpc-url https://mainnet.base.org
    MULTITRANSFER_PRIVATE_KEY=xxx multitransfer send ... --on-error retry --max-retries 2
"""
import asyncio
import logging
from typing import List, Optional

import click

from multitransfer import init_logging
from multitransfer.transfer import transfer_constants as CONSTANTS
from multitransfer.transfer.confirmation_watcher import Web3FinalityClient
from multitransfer.transfer.data_types import MultiTransferStates, TransferStatus, Web3ConnectionConfig
from multitransfer.transfer.multi_transfer_executor import MultiTransferExecutor
from multitransfer.transfer.transfer_signer import Web3TransferSigner
from multitransfer.transfer.transfer_utils import get_explorer_url, is_valid_address, parse_token_ids, shorten_address

ON_ERROR_SKIP = "skip"
ON_ERROR_RETRY = "retry"
ON_ERROR_ABORT = "abort"


async def run_batch(
    executor: MultiTransferExecutor,
    contract_address: str,
    to_address: str,
    token_ids: List[int],
    from_address: str,
    on_error: str = ON_ERROR_SKIP,
    max_retries: int = 0,
) -> dict:
    """
    Drive a batch to completion, answering signer errors with the chosen policy.

    With ``retry`` a position is retried up to ``max_retries`` times and then skipped.
    With ``abort`` the batch is reset at the first signer error.

    Returns:
        The executor summary taken at the end of the run, plus an ``aborted`` flag
    """
    executor.start_transfer(contract_address, to_address, token_ids, from_address)
    retries_at_position = 0
    retry_position: Optional[int] = None

    while not executor.is_complete:
        if executor.state == MultiTransferStates.ERROR_AT_POSITION:
            if executor.current_index != retry_position:
                retry_position = executor.current_index
                retries_at_position = 0
            if on_error == ON_ERROR_ABORT:
                summary = executor.to_summary()
                summary["aborted"] = True
                executor.reset()
                return summary
            if on_error == ON_ERROR_RETRY and retries_at_position < max_retries:
                retries_at_position += 1
                executor.retry()
            else:
                executor.skip()
            continue
        await executor.wait_for_update()

    summary = executor.to_summary()
    summary["aborted"] = False
    return summary


@click.group()
@click.version_option(package_name="multitransfer")
def cli():
    """multitransfer - Send ERC721 tokens one transaction at a time."""
    pass


@cli.command()
@click.option("--contract", "contract_address", required=True, help="ERC721 contract address.")
@click.option("--to", "to_address", required=True, help="Recipient address.")
@click.option("--token-ids", required=True, help="Token ids, comma separated, ranges allowed (1,2,5-7).")
@click.option("--rpc-url", required=True, envvar="MULTITRANSFER_RPC_URL", help="JSON-RPC endpoint.")
@click.option("--chain-id", type=int, default=None, envvar="MULTITRANSFER_CHAIN_ID", help="Chain id to sign for.")
@click.option(
    "--private-key",
    envvar="MULTITRANSFER_PRIVATE_KEY",
    hide_input=True,
    prompt=True,
    help="Private key of the sending wallet.",
)
@click.option(
    "--on-error",
    type=click.Choice([ON_ERROR_SKIP, ON_ERROR_RETRY, ON_ERROR_ABORT]),
    default=ON_ERROR_SKIP,
    show_default=True,
    help="What to do when a transfer cannot be signed or broadcast.",
)
@click.option("--max-retries", type=click.IntRange(min=0), default=2, show_default=True,
              help="Retries per token with --on-error retry.")
@click.option("--confirmation-timeout", type=float, default=CONSTANTS.CONFIRMATION_TIMEOUT, show_default=True,
              help="Seconds to wait for each receipt.")
@click.option("--explorer-url", default=CONSTANTS.DEFAULT_EXPLORER_URL, show_default=True,
              help="Block explorer used for transaction links.")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    show_default=True,
)
@click.pass_context
def send(
    ctx: click.Context,
    contract_address: str,
    to_address: str,
    token_ids: str,
    rpc_url: str,
    chain_id: Optional[int],
    private_key: str,
    on_error: str,
    max_retries: int,
    confirmation_timeout: float,
    explorer_url: str,
    log_level: str,
):
    """Transfer tokens to one recipient, one signed transaction per token."""
    init_logging(log_level)

    try:
        parsed_token_ids = parse_token_ids(token_ids)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--token-ids")
    if not parsed_token_ids:
        raise click.BadParameter("At least one token id is required.", param_hint="--token-ids")
    if not is_valid_address(contract_address):
        raise click.BadParameter(f"Invalid address: {contract_address}", param_hint="--contract")
    if not is_valid_address(to_address):
        raise click.BadParameter(f"Invalid address: {to_address}", param_hint="--to")

    try:
        config = Web3ConnectionConfig(
            rpc_url=rpc_url,
            chain_id=chain_id,
            confirmation_timeout=confirmation_timeout,
        )
        signer = Web3TransferSigner(config, private_key)
    except ValueError as e:
        raise click.ClickException(str(e))
    finality_client = Web3FinalityClient(config, w3=signer.w3)

    async def run() -> dict:
        executor = MultiTransferExecutor(signer, finality_client)
        return await run_batch(
            executor,
            contract_address,
            to_address,
            parsed_token_ids,
            signer.address,
            on_error=on_error,
            max_retries=max_retries,
        )

    click.echo(f"Sending {len(parsed_token_ids)} tokens from {shorten_address(signer.address)} "
               f"to {shorten_address(to_address)}")
    try:
        summary = asyncio.run(run())
    except KeyboardInterrupt:
        logging.getLogger(__name__).warning("Interrupted, broadcast transactions stay on the network")
        ctx.exit(130)

    _print_summary(summary, explorer_url)
    failed = [t for t in summary["transfers"] if t["status"] == TransferStatus.FAILED.value]
    if summary["aborted"] or failed:
        ctx.exit(1)


def _print_summary(summary: dict, explorer_url: str):
    for transfer in summary["transfers"]:
        tx_hash = transfer["tx_hash"]
        link = get_explorer_url(tx_hash, explorer_url) if tx_hash else "not broadcast"
        click.echo(f"  #{transfer['token_id']:<10} {transfer['status']:<8} {link}")
    if summary["aborted"]:
        click.echo(f"Aborted at token #{summary['failed_token_id']}: {summary['error']}")
    succeeded = sum(1 for t in summary["transfers"] if t["status"] == TransferStatus.SUCCESS.value)
    click.echo(f"{succeeded}/{summary['total_count']} transfers succeeded")


if __name__ == "__main__":
    cli()
