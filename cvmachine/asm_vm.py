"""Compact assembler-level machine with a heap and a dead-code pass."""

from __future__ import annotations

import argparse
import sys
from enum import IntEnum
from typing import Iterable, Sequence

from cvmachine.core import VMError

MEMORY_SIZE = 1 << 16
HEAP_SIZE = 2048
REGISTER_COUNT = 16


class AsmOpcode(IntEnum):
    """Instruction codes of the assembler-level machine."""

    CVM_ASM_1_0_0 = 1
    LOAD = 2
    MOV = 3
    CMP = 4
    INC = 5
    DEC = 6
    JNE = 7
    VOID = 8
    HALT = 9


def _int32(value: int) -> int:
    return ((int(value) + 0x80000000) & 0xFFFFFFFF) - 0x80000000


class AsmMachine:
    """A 16-register machine over 64K words of memory and a 2K-word heap."""

    def __init__(self) -> None:
        self.memory = [0] * MEMORY_SIZE
        self.memory[0] = AsmOpcode.CVM_ASM_1_0_0
        self.registers = [0] * REGISTER_COUNT
        self.pc = 1
        self.heap = [0] * HEAP_SIZE
        self.zf = False
        self.ef = False

    def load(self, program: Iterable[int]) -> None:
        """Copy program words into memory right after the version word."""
        words = [_int32(word) for word in program]
        if len(words) > MEMORY_SIZE - 1:
            raise VMError(f"Program of {len(words)} words does not fit in memory")
        self.memory[1 : 1 + len(words)] = words

    def emit(self, op: int, addr: int) -> None:
        """Write a single opcode byte at a 16-bit address."""
        self.memory[addr & 0xFFFF] = op & 0xFF

    def deadcode(self) -> None:
        """Remove repeated identical LOADs and cancelling INC/DEC pairs."""
        mem = self.memory
        for i, word in enumerate(mem):
            if (
                word == AsmOpcode.LOAD
                and i + 5 < MEMORY_SIZE
                and mem[i + 3] == AsmOpcode.LOAD
                and mem[i + 1] == mem[i + 4]
                and mem[i + 2] == mem[i + 5]
            ):
                for addr in range(i + 3, i + 6):
                    self.emit(0, addr)
            if (
                mem[i] == AsmOpcode.INC
                and i + 3 < MEMORY_SIZE
                and mem[i + 2] == AsmOpcode.DEC
                and mem[i + 1] == mem[i + 3]
            ):
                for addr in range(i, i + 4):
                    self.emit(AsmOpcode.VOID, addr)

    @staticmethod
    def _heap_index(addr: int) -> int:
        addr &= 0xFFFF
        if addr >= HEAP_SIZE:
            raise IndexError(f"heap address {addr} out of range({HEAP_SIZE})")
        return addr

    def write_heap(self, data: int, addr: int) -> None:
        """Store a 16-bit value in the heap."""
        self.heap[self._heap_index(addr)] = data & 0xFFFF

    def read_heap(self, addr: int) -> int:
        """Return the 16-bit value stored in the heap."""
        return self.heap[self._heap_index(addr)]

    def _fetch(self) -> int:
        word = self.memory[self.pc]
        self.pc = (self.pc + 1) & 0xFFFF
        return word

    def _fetch_reg(self) -> int:
        index = self._fetch() & 0xFF
        if index >= REGISTER_COUNT:
            raise VMError(f"Register index {index} out of range({REGISTER_COUNT})")
        return index

    def run(self) -> None:
        """Execute from the current program counter until HALT."""
        reg = self.registers
        while True:
            op = self._fetch()
            if op == AsmOpcode.LOAD:
                r = self._fetch_reg()
                reg[r] = _int32(self._fetch())
            elif op == AsmOpcode.MOV:
                r = self._fetch_reg()
                reg[r] = reg[self._fetch_reg()]
            elif op == AsmOpcode.CMP:
                r = self._fetch_reg()
                r1 = self._fetch_reg()
                self.ef = reg[r] == reg[r1]
                self.zf = reg[r] == 0
            elif op == AsmOpcode.INC:
                r = self._fetch_reg()
                reg[r] = _int32(reg[r] + 1)
            elif op == AsmOpcode.DEC:
                r = self._fetch_reg()
                reg[r] = _int32(reg[r] - 1)
            elif op == AsmOpcode.JNE:
                addr = self._fetch() & 0xFFFF
                if not self.ef:
                    self.pc = addr
            elif op == AsmOpcode.VOID:
                continue
            elif op == AsmOpcode.HALT:
                return
            else:
                raise VMError(f"Unknown opcode: {op} at {(self.pc - 1) & 0xFFFF}")

    def dump(self) -> list[int]:
        """Return every non-zero memory word in address order."""
        return [word for word in self.memory if word != 0]


def _counting_program(count: int) -> list[int]:
    return [
        AsmOpcode.LOAD, 1, count,
        AsmOpcode.CMP, 0, 1,
        AsmOpcode.INC, 0,
        AsmOpcode.JNE, 4,
        AsmOpcode.HALT,
    ]


def main(argv: Sequence[str] | None = None) -> int:
    """Print the loaded counting program, run it and print register 0."""
    parser = argparse.ArgumentParser(description="Run the assembler-level counting demo.")
    parser.add_argument("count", nargs="?", type=int, default=100000000)
    args = parser.parse_args(argv)
    machine = AsmMachine()
    try:
        machine.load(_counting_program(args.count))
        for word in machine.dump():
            print(f"({word})")
        machine.run()
    except VMError as exc:
        print(exc)
        return 1
    print(machine.registers[0])
    return 0


if __name__ == "__main__":
    sys.exit(main())