"""Register machine with a small cache and a constant-folding pass."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Iterable, MutableSequence, Sequence

MEMORY_SIZE = 1 << 18
REGISTER_COUNT = 16
CACHE_NAME = "CVM-SCS"
_FOLD_LIMIT = 262140


class Opcode(IntEnum):
    """Instruction codes of the machine."""

    NOP = 1
    LOAD = 2
    ADD = 3
    SUB = 4
    MUL = 5
    DIV = 6
    AND = 7
    NOT = 8
    OR = 9
    XOR = 10
    ADDI = 11
    SUBI = 12
    MULI = 13
    DIVI = 14
    JMP = 15
    JNZ = 16
    JZ = 17
    JBT = 18
    JST = 19
    JNE = 20
    JE = 21
    JBE = 22
    JSE = 23
    CMP = 24
    INC = 25
    STOREINT = 26
    GET = 27
    HALT = 28
    OP_SIGN = 29


class VMError(Exception):
    """Raised when the machine cannot carry on."""


def _int32(value: int) -> int:
    return ((int(value) + 0x80000000) & 0xFFFFFFFF) - 0x80000000


def _int16(value: int) -> int:
    return ((int(value) + 0x8000) & 0xFFFF) - 0x8000


def _div(a: int, b: int) -> int:
    if b == 0:
        raise VMError("Division by zero")
    quotient = abs(a) // abs(b)
    return _int32(quotient if (a < 0) == (b < 0) else -quotient)


@dataclass
class Cache:
    """Three-level scratch storage addressed by byte."""

    name: str = CACHE_NAME
    l1: list[int] = field(default_factory=lambda: [0] * 64)
    l2: list[int] = field(default_factory=lambda: [0] * 128)
    l3: list[int] = field(default_factory=lambda: [0] * 256)

    @staticmethod
    def _index(level: list[int], addr: int) -> int:
        addr &= 0xFF
        if addr >= len(level):
            raise IndexError(f"cache address {addr} out of range({len(level)})")
        return addr

    def store_l1(self, addr: int, value: int) -> None:
        self.l1[self._index(self.l1, addr)] = _int16(value)

    def read_l1(self, addr: int) -> int:
        return self.l1[self._index(self.l1, addr)]

    def write_l3(self, addr: int, value: int) -> None:
        self.l3[self._index(self.l3, addr)] = _int32(value)

    def read_l3(self, addr: int) -> int:
        return self.l3[self._index(self.l3, addr)]


@dataclass
class Flags:
    """Condition flags set by CMP."""

    zf: bool = False
    sf: bool = False
    cf: bool = False
    of: bool = False
    uf: bool = False
    idf: bool = False


def sign(memory: MutableSequence[int]) -> None:
    """Write the bytecode signature into the first memory cell."""
    memory[0] = Opcode.OP_SIGN


_ERROR_MESSAGES = {
    0: "External system error",
    1: "Incorrect bytecode No: {detail}",
    2: "Unknown internal error",
    3: "Program is to big, limit size of memory: 1 MB",
}


def error_message(code: int, detail: int = 0) -> str:
    """Return the text for a numbered machine error."""
    try:
        template = _ERROR_MESSAGES[code]
    except KeyError:
        raise ValueError(f"unknown error code {code}") from None
    return template.format(detail=detail)


class Machine:
    """A 16-register machine executing 32-bit word bytecode."""

    def __init__(self, security: int = 0, optimize: bool = False) -> None:
        self.registers = [0] * REGISTER_COUNT
        self.memory = [0] * MEMORY_SIZE
        sign(self.memory)
        self.pc = 0
        self.optimize = optimize
        self.flags = Flags()
        self.cache = Cache()
        if security == 1:
            self.memory[MEMORY_SIZE - 1] = Opcode.HALT
            if self.cache.name != CACHE_NAME:
                raise VMError("Used non-cvm system of cache")

    def load(self, program: Iterable[int], offset: int = 1) -> None:
        """Copy program words into memory starting at offset."""
        words = [_int32(word) for word in program]
        if offset < 0 or offset + len(words) > MEMORY_SIZE:
            raise VMError(error_message(3))
        self.memory[offset : offset + len(words)] = words

    def inline_constant(self) -> None:
        """Fold LOAD, LOAD, arithmetic sequences into a single LOAD."""
        if not self.optimize:
            return
        mem = self.memory
        ops = (Opcode.ADD, Opcode.SUB, Opcode.MUL, Opcode.DIV)
        last = min(_FOLD_LIMIT, MEMORY_SIZE - 8)
        j = 0
        while True:
            try:
                j = mem.index(Opcode.LOAD, j, last)
            except ValueError:
                return
            if mem[j + 3] == Opcode.LOAD and mem[j + 6] in ops:
                r1 = mem[j + 1] & 0xFF
                r2 = mem[j + 4] & 0xFF
                val1, val2 = mem[j + 2], mem[j + 5]
                op = mem[j + 6]
                if mem[j + 7] == r1 and mem[j + 8] == r2:
                    if op == Opcode.ADD:
                        folded = _int32(val1 + val2)
                    elif op == Opcode.SUB:
                        folded = _int32(val1 - val2)
                    elif op == Opcode.MUL:
                        folded = _int32(val1 * val2)
                    else:
                        folded = _div(val1, val2)
                    mem[j : j + 9] = [Opcode.LOAD, r1, folded] + [Opcode.NOP] * 6
            j += 1

    def _fetch(self) -> int:
        try:
            word = self.memory[self.pc]
        except IndexError:
            raise VMError(f"Program counter {self.pc} outside memory") from None
        self.pc += 1
        return word

    @staticmethod
    def _reg(index: int) -> int:
        if not 0 <= index < REGISTER_COUNT:
            raise VMError(f"Register index {index} out of range({REGISTER_COUNT})")
        return index

    def _byte_reg(self) -> int:
        return self._reg(self._fetch() & 0xFF)

    def _word_reg(self) -> int:
        return self._reg(self._fetch() & 0xFFFFFFFF)

    def _jump(self, addr: int) -> None:
        self.pc = addr & 0xFFFFFFFF

    def run(self) -> None:
        """Execute from the word after the signature until HALT."""
        if self.memory[0] != Opcode.OP_SIGN:
            raise VMError("Used bytecode without CVM32 signature!")
        self.pc += 1
        reg = self.registers
        flags = self.flags
        binary = {
            Opcode.ADD: lambda a, b: a + b,
            Opcode.SUB: lambda a, b: a - b,
            Opcode.SUBI: lambda a, b: a - b,
            Opcode.MUL: lambda a, b: a * b,
            Opcode.MULI: lambda a, b: a * b,
            Opcode.DIV: _div,
            Opcode.DIVI: _div,
            Opcode.AND: lambda a, b: a & b,
            Opcode.OR: lambda a, b: a | b,
            Opcode.XOR: lambda a, b: a ^ b,
        }
        stay_if = {
            Opcode.JST: lambda a, b: a < b,
            Opcode.JBT: lambda a, b: a > b,
            Opcode.JSE: lambda a, b: a <= b,
            Opcode.JBE: lambda a, b: a >= b,
        }
        while True:
            op = self._fetch()
            if op == Opcode.LOAD:
                r = self._byte_reg()
                reg[r] = _int32(self._fetch())
            elif op == Opcode.STOREINT:
                addr = self._fetch()
                self.cache.write_l3(addr, self._fetch())
            elif op == Opcode.GET:
                r = self._byte_reg()
                reg[r] = self.cache.read_l3(self._fetch())
            elif op == Opcode.ADDI:
                r = self._byte_reg()
                reg[r] = _int32(reg[r] + reg[self._reg(self._fetch())])
            elif op in binary:
                r = self._byte_reg()
                r2 = self._byte_reg()
                reg[r] = _int32(binary[op](reg[r], reg[r2]))
            elif op == Opcode.NOT:
                r = self._byte_reg()
                r2 = self._byte_reg()
                reg[r] = ~reg[r2]
            elif op == Opcode.JMP:
                self._jump(self._fetch())
            elif op in (Opcode.JZ, Opcode.JNZ):
                self._fetch()
                addr = self._fetch()
                if flags.zf == (op == Opcode.JZ):
                    self._jump(addr)
            elif op in (Opcode.JE, Opcode.JNE):
                addr = self._fetch()
                if flags.idf == (op == Opcode.JE):
                    self._jump(addr)
            elif op in stay_if:
                r = self._word_reg()
                r2 = self._word_reg()
                addr = self._fetch()
                if not stay_if[op](reg[r], reg[r2]):
                    self._jump(addr)
            elif op == Opcode.CMP:
                v = reg[self._word_reg()]
                v2 = reg[self._word_reg()]
                res = _int32(v - v2)
                flags.zf = res == 0
                flags.sf = res < 0
                flags.uf = res > 0
                flags.cf = (v & 0xFFFFFFFF) < (v2 & 0xFFFFFFFF)
                flags.of = (v > 0 and v2 < 0 and res < 0) or (v < 0 and v2 > 0 and res > 0)
                flags.idf = v == v2
            elif op == Opcode.INC:
                r = self._reg(self._fetch())
                reg[r] = _int32(reg[r] + 1)
            elif op == Opcode.HALT:
                return
            elif op == Opcode.NOP:
                continue
            else:
                raise VMError(error_message(1, op))

    def dump(self) -> list[int]:
        """Return every non-zero memory word in address order."""
        return [word for word in self.memory if word != 0]

    def peek(self, addr: int) -> int:
        return self.memory[addr]

    def poke(self, addr: int, value: int) -> None:
        self.memory[addr] = _int32(value)

    def get_register(self, n: int) -> int:
        return self.registers[self._check_register(n)]

    def set_register(self, n: int, value: int) -> None:
        self.registers[self._check_register(n)] = _int32(value)

    @staticmethod
    def _check_register(n: int) -> int:
        if not 0 <= n < REGISTER_COUNT:
            raise VMError("Register index out of range(16)")
        return n


def _counting_program(count: int) -> Sequence[int]:
    return [
        Opcode.LOAD, 0, 1,
        Opcode.LOAD, 1, count,
        Opcode.CMP, 0, 1,
        Opcode.INC, 0,
        Opcode.JNE, 7,
        Opcode.HALT,
    ]


def main(argv: Sequence[str] | None = None) -> int:
    """Run the built-in counting program and print memory and register 0."""
    parser = argparse.ArgumentParser(description="Run the counting demo program.")
    parser.add_argument("count", nargs="?", type=int, default=100000000)
    args = parser.parse_args(argv)
    machine = Machine(security=0, optimize=False)
    try:
        machine.load(_counting_program(args.count))
        machine.run()
    except VMError as exc:
        print(exc)
        return 1
    for word in machine.dump():
        print(word)
    print(f"({machine.get_register(0)})")
    return 0


if __name__ == "__main__":
    sys.exit(main())