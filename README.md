# cvmachine

cvmachine holds two small register-based bytecode virtual machines. Programs
are sequences of integer words.

- `cvmachine.core` provides the 32-bit machine, `Machine`. It has sixteen
  registers and a word-addressed memory of 2^18 cells. It also has a `Cache`
  with `l1` (64 cells), `l2` (128 cells) and `l3` (256 cells) lists, the
  comparison `Flags` set by `CMP`, conditional jumps, and an optional
  constant-folding pass. Memory cell 0 must hold the signature word
  `Opcode.OP_SIGN`. `Machine()` writes it there, and `sign(memory)` writes it
  into any list.
- `cvmachine.asm_vm` provides the compact machine, `AsmMachine`. It has
  65,536 memory cells, a 2,048-cell heap of 16-bit values and the instructions
  of `AsmOpcode` (`LOAD`, `MOV`, `CMP`, `INC`, `DEC`, `JNE`, `VOID`, `HALT`).
  It also has a dead-code pass.
- `cvmachine.objects` provides typed value objects: `CvmObject`, tagged with an
  `ObjType`. `pack` turns one into a `PackedObject` and `unpack` turns it back
  into a compiled `CvmObject`.

Both machines raise `VMError` (from `cvmachine.core`) when they cannot go on.
This happens on an unknown opcode, a register index outside 0–15, division by
zero, or a program that does not fit in memory.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## The 32-bit machine

```python
from cvmachine.core import Machine, Opcode

vm = Machine()
vm.load([
    Opcode.LOAD, 0, 6,
    Opcode.LOAD, 1, 7,
    Opcode.MUL, 0, 1,
    Opcode.HALT,
])
vm.run()
print(vm.get_register(0))   # 42
```

`load(program, offset=1)` copies the words into memory from `offset` on.
`run()` checks the signature and then executes from address 1 until `HALT`.
All register arithmetic wraps to signed 32 bits.

`Machine(security=0, optimize=False)` takes two options:

- `security=1` puts a `HALT` in the last memory cell.
- `optimize=True` lets `inline_constant()` run. When two `LOAD`s are followed
  by `ADD`, `SUB`, `MUL` or `DIV` on the same two registers, the pass folds
  them into a single `LOAD` of the result and fills the rest with `NOP`. With
  `optimize=False` the call does nothing.

Other methods and helpers:

- `peek(addr)` reads a memory cell and `poke(addr, value)` writes one.
- `dump()` returns the non-zero memory cells in address order.
- `get_register(n)` reads a register and `set_register(n, value)` writes one.
- `vm.cache.store_l1` / `read_l1` and `write_l3` / `read_l3` access the cache.
  `STOREINT` and `GET` use L3.
- `error_message(code, detail=0)` returns the text for error codes 0–3.

## The compact machine

```python
from cvmachine.asm_vm import AsmMachine, AsmOpcode

vm = AsmMachine()
vm.load([AsmOpcode.LOAD, 1, 5, AsmOpcode.INC, 1, AsmOpcode.HALT])
vm.deadcode()
vm.run()
print(vm.registers[1])   # 6
```

`load` places the program just after the version word in cell 0, and `run()`
starts at address 1. The `deadcode()` pass handles two patterns:

- A second `LOAD` identical to the one right before it is zeroed.
- An `INC r` directly followed by `DEC r` is replaced with `VOID`s.

Other methods:

- `emit(op, addr)` writes one opcode.
- `write_heap(data, addr)` and `read_heap(addr)` access the heap.
- `dump()` returns the non-zero memory cells.

## Command line

Each machine has a demonstration program that counts a register up to a
limit. The limit is an optional argument and defaults to 100,000,000, which
takes a long time here, so pass a smaller one:

```
cvm 1000
cvm-asm 1000
```

The two commands print in a different order:

- `cvm` runs the program, then prints the non-zero memory words and register 0
  in parentheses.
- `cvm-asm` prints the loaded memory words in parentheses, runs the program,
  then prints register 0.

## What it does not do

There is no assembler and no bytecode file format. Programs are built in
Python as lists of integers. The commands only run their built-in counting
program.