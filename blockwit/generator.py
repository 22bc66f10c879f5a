import json
import re
import subprocess
from typing import List, NamedTuple, Optional, Protocol
from .errors import GeneratorError, MissingSiblingError
from .types import Address, Bytes32, bytes32_from_hex
from .witness import WitnessBundle


class GenerationResult(NamedTuple):
    # state root the generator computed after executing the block, if it reports one
    state_root_after: Optional[Bytes32]


class WitnessGenerator(Protocol):
    def generate(self, bundle: WitnessBundle) -> GenerationResult:
        """Run witness generation for the bundle.

        Raises MissingSiblingError when the witness lacks a sibling needed to delete a branch node,
        and GeneratorError for any other failure.
        """
        raise NotImplementedError


# Debug output of a kernel panic in the plonky2 EVM, raised by the branch deletion routine.
# The first stack item is the selector nibble of the missing sibling.
KERNEL_PANIC_RE = re.compile(
    r"KernelPanic in kernel at pc=delete_hash_node_branch, stack=\[(\d+),[\s\d*,]*\], memory=\[.*\], "
    r"last_storage_slot=Some\(\((.*), (.*), (.*)\)\)")


def _parse_int(v) -> int:
    if isinstance(v, int):
        return v
    v = str(v).strip()
    if v.startswith('0x'):
        return int(v, 16)
    return int(v)


def parse_generator_failure(text: str) -> GeneratorError:
    """Interpret the diagnostic output of a failed generator run.

    Understands a JSON object ``{"error": "missing_sibling", "nibble", "address", "slot", "depth"}``,
    and the kernel panic message of the plonky2 EVM. Any other output becomes a plain GeneratorError.
    """
    stripped = text.strip()
    for line in stripped.splitlines():
        line = line.strip()
        if not line.startswith('{'):
            continue
        try:
            obj = json.loads(line)
        except ValueError:
            continue
        if isinstance(obj, dict) and obj.get('error') == 'missing_sibling':
            try:
                return MissingSiblingError(
                    nibble=_parse_int(obj['nibble']),
                    address=Address.from_hex(obj['address']),
                    slot=_parse_int(obj['slot']),
                    depth=_parse_int(obj['depth']),
                )
            except (KeyError, ValueError) as e:
                return GeneratorError("malformed missing sibling report: %s (%s)" % (line, e))

    m = KERNEL_PANIC_RE.search(text)
    if m is not None:
        try:
            return MissingSiblingError(
                nibble=int(m.group(1)),
                address=Address.from_hex(m.group(2).strip()),
                slot=_parse_int(m.group(3)),  # decimal U256
                depth=int(m.group(4)),
            )
        except ValueError as e:
            return GeneratorError("malformed kernel panic: %s (%s)" % (m.group(0), e))

    return GeneratorError(stripped or "witness generation failed without output")


class SubprocessGenerator(WitnessGenerator):
    """Runs an external generator command: bundle JSON on stdin, result JSON on stdout"""
    command: List[str]
    timeout: Optional[float]

    def __init__(self, command: List[str], timeout: Optional[float] = None):
        self.command = command
        self.timeout = timeout

    def generate(self, bundle: WitnessBundle) -> GenerationResult:
        payload = json.dumps(bundle.to_obj())
        try:
            proc = subprocess.run(self.command, input=payload, capture_output=True, text=True,
                                  timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise GeneratorError("could not run generator %s: %s" % (self.command[0], e)) from e
        if proc.returncode != 0:
            raise parse_generator_failure(proc.stderr + "\n" + proc.stdout)
        out = proc.stdout.strip()
        if out == "":
            return GenerationResult(state_root_after=None)
        try:
            obj = json.loads(out)
            root = obj.get('state_root')
            return GenerationResult(state_root_after=None if root is None else bytes32_from_hex(root))
        except (ValueError, AttributeError) as e:
            raise GeneratorError("unexpected generator output: %s" % out) from e
