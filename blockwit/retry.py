from typing import Callable, Dict, List, Optional
from . import encode_hex
from .assemble import assemble
from .errors import MissingSiblingError, RetryLimitExceeded
from .external import ExternalSource
from .generator import GenerationResult, WitnessGenerator
from .grind import grind, sibling_target
from .params import DEFAULT_MAX_ATTEMPTS, GWEI
from .types import Address, Bytes32


class RetryContext(object):
    """State carried between the witness generation attempts of one block"""
    block_number: int
    # storage slots found by grinding, on top of the slots the transactions touch.
    # Only grows: every attempt that fails on a missing sibling adds one new slot.
    extra_slots: Dict[Address, List[Bytes32]]
    attempts: int

    def __init__(self, block_number: int):
        self.block_number = block_number
        self.extra_slots = dict()
        self.attempts = 0

    def add_slot(self, address: Address, slot: Bytes32) -> None:
        slots = self.extra_slots.setdefault(address, [])
        if slot in slots:
            raise ValueError("slot %s already added for 0x%s" % (encode_hex(slot), address.hex()))
        slots.append(slot)


def prove_block_with_retries(src: ExternalSource, generator: WitnessGenerator, block_number: int,
                             max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                             on_attempt: Optional[Callable[[RetryContext], None]] = None,
                             on_retry: Optional[Callable[[RetryContext, MissingSiblingError, Bytes32], None]] = None,
                             on_mismatch: Optional[Callable[[RetryContext, GenerationResult, Bytes32], None]] = None,
                             grind_workers: int = 1,
                             withdrawal_unit: int = GWEI) -> GenerationResult:
    """Assemble the witness of a block and generate with it, until the witness is complete.

    When generation fails on a missing sibling, a storage slot that lands in that sibling is ground out,
    and the whole witness is assembled again with it. Every other error is raised as-is.
    """
    ctx = RetryContext(block_number)
    while ctx.attempts < max_attempts:
        ctx.attempts += 1
        if on_attempt is not None:
            on_attempt(ctx)
        # the bundle is rebuilt from scratch every attempt, the extra slots can reshape the tries
        bundle = assemble(src, block_number, ctx.extra_slots, withdrawal_unit=withdrawal_unit)
        try:
            result = generator.generate(bundle)
        except MissingSiblingError as e:
            target = sibling_target(e.slot, e.nibble, e.depth)
            address = Address(e.address)
            slot = grind(target, exclude=ctx.extra_slots.get(address, ()), workers=grind_workers)
            ctx.add_slot(address, slot)
            if on_retry is not None:
                on_retry(ctx, e, slot)
            continue
        if result.state_root_after is not None and result.state_root_after != bundle.expected_state_root:
            if on_mismatch is not None:
                on_mismatch(ctx, result, bundle.expected_state_root)
        return result
    raise RetryLimitExceeded("block %d: witness still incomplete after %d attempts" % (block_number, max_attempts))
