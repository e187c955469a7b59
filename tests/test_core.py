import pytest

from cvmachine.core import (
    MEMORY_SIZE,
    Cache,
    Machine,
    Opcode,
    VMError,
    error_message,
    main,
    sign,
)

O = Opcode
INT_MAX = 2**31 - 1
INT_MIN = -(2**31)


def run_program(program, optimize=False):
    machine = Machine(optimize=optimize)
    machine.load(program)
    machine.run()
    return machine


def test_new_machine_is_signed():
    machine = Machine()
    assert machine.peek(0) == Opcode.OP_SIGN
    assert machine.dump() == [Opcode.OP_SIGN]


def test_security_places_halt_at_end():
    machine = Machine(security=1)
    assert machine.peek(MEMORY_SIZE - 1) == Opcode.HALT


def test_run_without_signature_raises():
    machine = Machine()
    machine.poke(0, 0)
    machine.load([O.HALT])
    with pytest.raises(VMError, match="signature"):
        machine.run()


def test_sign_restores_signature():
    memory = [0] * 4
    sign(memory)
    assert memory[0] == Opcode.OP_SIGN


@pytest.mark.parametrize(
    "op, a, b, expected",
    [
        (O.ADD, 7, 5, 7 + 5),
        (O.SUB, 7, 5, 7 - 5),
        (O.MUL, 7, 5, 7 * 5),
        (O.AND, 12, 10, 12 & 10),
        (O.OR, 12, 10, 12 | 10),
        (O.XOR, 12, 10, 12 ^ 10),
        (O.SUBI, 9, 4, 9 - 4),
        (O.MULI, 9, 4, 9 * 4),
        (O.DIVI, 9, 4, 9 // 4),
    ],
)
def test_binary_operations(op, a, b, expected):
    machine = run_program([O.LOAD, 0, a, O.LOAD, 1, b, op, 0, 1, O.HALT])
    assert machine.get_register(0) == expected
    assert machine.get_register(1) == b


def test_addi_adds_register():
    machine = run_program([O.LOAD, 0, 3, O.LOAD, 2, 4, O.ADDI, 0, 2, O.HALT])
    assert machine.get_register(0) == 3 + 4


def test_add_wraps_to_int32():
    machine = run_program([O.LOAD, 0, INT_MAX, O.LOAD, 1, 1, O.ADD, 0, 1, O.HALT])
    assert machine.get_register(0) == INT_MIN


def test_div_truncates_toward_zero():
    machine = run_program([O.LOAD, 0, -7, O.LOAD, 1, 2, O.DIV, 0, 1, O.HALT])
    assert machine.get_register(0) == int(-7 / 2)


def test_div_by_zero_raises():
    with pytest.raises(VMError):
        run_program([O.LOAD, 0, 1, O.DIV, 0, 1, O.HALT])


def test_not_complements():
    machine = run_program([O.LOAD, 1, 6, O.NOT, 0, 1, O.HALT])
    assert machine.get_register(0) == ~6


def test_unknown_opcode_raises():
    with pytest.raises(VMError, match="Incorrect bytecode No: 99"):
        run_program([99])


def test_zero_word_is_unknown_opcode():
    with pytest.raises(VMError):
        run_program([O.NOP])


def test_bad_register_raises():
    with pytest.raises(VMError):
        run_program([O.LOAD, 20, 1, O.HALT])


def test_cmp_equal_sets_flags():
    machine = run_program([O.LOAD, 0, 4, O.LOAD, 1, 4, O.CMP, 0, 1, O.HALT])
    assert machine.flags.zf and machine.flags.idf
    assert not machine.flags.sf and not machine.flags.uf


def test_cmp_less_sets_sign_and_carry():
    machine = run_program([O.LOAD, 0, 1, O.LOAD, 1, 4, O.CMP, 0, 1, O.HALT])
    assert machine.flags.sf and machine.flags.cf
    assert not machine.flags.idf


def test_cmp_overflow_flag():
    machine = run_program([O.LOAD, 0, INT_MAX, O.LOAD, 1, -1, O.CMP, 0, 1, O.HALT])
    assert machine.flags.of


def test_jst_stays_when_less():
    program = [O.LOAD, 0, 1, O.LOAD, 1, 2, O.JST, 0, 1, 16, O.LOAD, 2, 5, O.HALT,
               O.HALT, O.HALT, O.LOAD, 3, 5, O.HALT]
    machine = run_program(program)
    assert machine.get_register(2) == 5
    assert machine.get_register(3) == 0


def test_storeint_get_round_trip():
    machine = run_program([O.STOREINT, 10, -42, O.GET, 5, 10, O.HALT])
    assert machine.get_register(5) == -42
    assert machine.cache.read_l3(10) == -42


def test_counting_loop():
    count = 50
    machine = Machine()
    machine.load([O.LOAD, 0, 1, O.LOAD, 1, count, O.CMP, 0, 1, O.INC, 0, O.JNE, 7, O.HALT])
    machine.run()
    assert machine.get_register(0) == count + 1
    assert machine.flags.idf


def test_inline_constant_folds_and_preserves_result():
    program = [O.LOAD, 0, 6, O.LOAD, 1, 7, O.MUL, 0, 1, O.HALT]
    plain = run_program(program)
    optimized = Machine(optimize=True)
    optimized.load(program)
    optimized.inline_constant()
    assert optimized.peek(4) == O.NOP
    assert optimized.peek(9) == O.NOP
    optimized.run()
    assert optimized.get_register(0) == plain.get_register(0)


def test_inline_constant_disabled_without_optimize():
    program = [O.LOAD, 0, 6, O.LOAD, 1, 7, O.ADD, 0, 1, O.HALT]
    machine = Machine()
    machine.load(program)
    machine.inline_constant()
    assert machine.memory[1:1 + len(program)] == program


def test_poke_peek_round_trip_wraps():
    machine = Machine()
    machine.poke(100, 2**32 + 5)
    assert machine.peek(100) == 5


def test_register_access_round_trip():
    machine = Machine()
    machine.set_register(15, -9)
    assert machine.get_register(15) == -9


@pytest.mark.parametrize("n", [16, 17, -1])
def test_register_index_out_of_range(n):
    machine = Machine()
    with pytest.raises(VMError, match="Register index out of range"):
        machine.set_register(n, 1)


def test_load_too_large_raises():
    machine = Machine()
    with pytest.raises(VMError, match="Program is to big"):
        machine.load([O.NOP] * MEMORY_SIZE)


def test_error_messages():
    assert error_message(3) == "Program is to big, limit size of memory: 1 MB"
    assert error_message(1, 42) == "Incorrect bytecode No: 42"
    with pytest.raises(ValueError):
        error_message(9)


def test_cache_l1_round_trip_wraps_int16():
    cache = Cache()
    cache.store_l1(3, 2**15)
    assert cache.read_l1(3) == -(2**15)


def test_cache_l3_address_is_byte():
    cache = Cache()
    cache.write_l3(256 + 5, 77)
    assert cache.read_l3(5) == 77


def test_cache_l1_out_of_range():
    cache = Cache()
    with pytest.raises(IndexError):
        cache.store_l1(100, 1)


def test_main_prints_memory_and_counter(capsys):
    count = 3
    assert main([str(count)]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == str(int(Opcode.OP_SIGN))
    assert lines[-1] == f"({count + 1})"
    assert lines[-2] == str(int(Opcode.HALT))