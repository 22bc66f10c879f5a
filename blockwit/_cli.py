import json
import shlex
from typing import Dict, List, TextIO, Tuple
import click
from . import encode_hex
from .assemble import assemble
from .errors import MissingSiblingError, WitnessError
from .external import HttpSource
from .generator import GenerationResult, SubprocessGenerator
from .params import DEFAULT_MAX_ATTEMPTS, DEFAULT_RPC_TIMEOUT, GWEI
from .retry import RetryContext, prove_block_with_retries
from .types import Address, Bytes32, bytes32_from_hex


@click.group()
def cli():
    """blockwit - assemble block witnesses from eth_getProof
    \f
    Reconstructs the partial state trie a block needs from Merkle proofs,
    and retries witness generation until no trie data is missing."""


def parse_slots(values: Tuple[str, ...]) -> Dict[Address, List[Bytes32]]:
    out: Dict[Address, List[Bytes32]] = dict()
    for v in values:
        addr, sep, slot = v.partition(':')
        if sep == '':
            raise click.BadParameter("expected ADDRESS:SLOT, got %s" % v, param_hint='--slot')
        try:
            out.setdefault(Address.from_hex(addr), []).append(bytes32_from_hex(slot))
        except ValueError as e:
            raise click.BadParameter("invalid slot %s: %s" % (v, e), param_hint='--slot')
    return out


@cli.command()
@click.argument('block', type=click.INT)
@click.option('--rpc-url', envvar='RPC_URL', required=True, help="JSON-RPC endpoint of an archive node with debug API")
@click.option('--generator', envvar='WITNESS_GENERATOR', required=True,
              help="Witness generator command, reads the bundle JSON on stdin")
@click.option('--max-attempts', envvar='BLOCKWIT_MAX_ATTEMPTS', type=click.IntRange(min=1),
              default=DEFAULT_MAX_ATTEMPTS, show_default=True)
@click.option('--grind-workers', type=click.IntRange(min=1), default=1, show_default=True,
              help="Processes used to grind storage slots")
@click.option('--withdrawal-unit', type=click.IntRange(min=1), default=GWEI, show_default=True,
              help="Factor from the reported withdrawal amount to wei")
@click.option('--timeout', type=click.FLOAT, default=DEFAULT_RPC_TIMEOUT, show_default=True,
              help="Seconds per RPC request")
def prove(block: int, rpc_url: str, generator: str, max_attempts: int, grind_workers: int,
          withdrawal_unit: int, timeout: float):
    """Generate the witness for BLOCK, adding storage slots until it is complete"""
    src = HttpSource(rpc_url, timeout=timeout)
    gen = SubprocessGenerator(shlex.split(generator))

    def on_attempt(ctx: RetryContext):
        click.echo("Proving block %d, attempt %d" % (ctx.block_number, ctx.attempts))

    def on_retry(ctx: RetryContext, e: MissingSiblingError, slot: Bytes32):
        click.echo("Block number: %d, nibble: %d, address: %s, slot: %d, depth: %d"
                   % (ctx.block_number, e.nibble, encode_hex(e.address), e.slot, e.depth))
        click.echo("adding slot %s" % encode_hex(slot))

    def on_mismatch(ctx: RetryContext, result: GenerationResult, expected: Bytes32):
        click.echo("block %d: generator computed state root %s, expected %s"
                   % (ctx.block_number, encode_hex(result.state_root_after), encode_hex(expected)), err=True)

    try:
        prove_block_with_retries(src, gen, block, max_attempts=max_attempts, on_attempt=on_attempt,
                                 on_retry=on_retry, on_mismatch=on_mismatch, grind_workers=grind_workers,
                                 withdrawal_unit=withdrawal_unit)
    except WitnessError as e:
        raise click.ClickException("block %d: %s" % (block, e))
    click.echo("done!")


@cli.command()
@click.argument('block', type=click.INT)
@click.argument('output', type=click.File('w'))
@click.option('--rpc-url', envvar='RPC_URL', required=True, help="JSON-RPC endpoint of an archive node with debug API")
@click.option('--slot', 'slots', multiple=True, metavar='ADDRESS:SLOT', help="Extra storage slot to fetch")
@click.option('--withdrawal-unit', type=click.IntRange(min=1), default=GWEI, show_default=True)
@click.option('--timeout', type=click.FLOAT, default=DEFAULT_RPC_TIMEOUT, show_default=True)
def witness(block: int, output: TextIO, rpc_url: str, slots: Tuple[str, ...], withdrawal_unit: int,
            timeout: float):
    """Assemble the witness bundle of BLOCK once, and write it as JSON to OUTPUT"""
    extra_slots = parse_slots(slots)
    src = HttpSource(rpc_url, timeout=timeout)
    click.echo("assembling witness for block %d..." % block, err=True)
    try:
        bundle = assemble(src, block, extra_slots, withdrawal_unit=withdrawal_unit)
    except WitnessError as e:
        raise click.ClickException("block %d: %s" % (block, e))
    click.echo("state root %s, %d storage tries, %d codes" % (
        encode_hex(bundle.state_trie.hash()), len(bundle.storage_tries), len(bundle.contract_code)), err=True)
    json.dump(bundle.to_obj(), output)
