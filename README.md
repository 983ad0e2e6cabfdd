# quantumvm

A stack-based bytecode interpreter for Quantum smart contracts, with a static
bytecode verifier, fuel metering and a small runtime environment.

## What it provides

- `quantumvm.types`: type tags (`Primitive`, `VectorType`, `StructType`,
  `TypeParameterType`, `ReferenceType`, `MutableReferenceType`),
  `is_integer_type`, `ObjectID`, `SilverAddress` (both 64 bytes) and
  `BytecodeVersion`.
- `quantumvm.instructions`: the instruction set (`Opcode`, `Instruction`,
  `CallGenericArgs`). Each `Instruction` checks its operand on construction
  and offers `fuel_cost()`, `is_branch()`, `branch_offset()` and
  `is_terminal()`.
- `quantumvm.bytecode`: modules, functions, structs, constant pools
  (`Constant`, `ConstantKind`) and whole packages (`Bytecode`), with
  structural validation (`validate()`, raising `BytecodeError`), lookups by
  name (`find_module`, `find_function`, `find_struct`) and binary
  serialization with msgpack (`Bytecode.serialize` / `Bytecode.deserialize`).
- `quantumvm.checks` and `quantumvm.verifier`: `verify_bytecode`,
  `verify_module` and `verify_function`, which type-check the operand stack,
  check moves and borrows of local variables, and make sure a reachable last
  instruction is a `Ret` or `Abort`.
- `quantumvm.values` and `quantumvm.arithmetic`: runtime values (`Value`,
  `ValueKind`), the bounded `ExecutionStack`, interpreter errors, and the
  arithmetic and comparison operations.
- `quantumvm.interpreter`: `Interpreter`, which runs a function of a module
  against a fuel budget.
- `quantumvm.runtime`: `Runtime`, which records events, object reads and
  writes, an in-memory object store and the `TransactionContext`.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Running a function

```python
from quantumvm.bytecode import Function, FunctionSignature, Module
from quantumvm.instructions import Instruction, Opcode
from quantumvm.interpreter import Interpreter
from quantumvm.types import Primitive
from quantumvm.verifier import verify_function

add = Function(
    name="add",
    signature=FunctionSignature(return_types=[Primitive.U64]),
    code=[
        Instruction(Opcode.LD_U64, 10),
        Instruction(Opcode.LD_U64, 20),
        Instruction(Opcode.ADD),
        Instruction(Opcode.RET),
    ],
)

verify_function(add)  # raises a VerifierError subclass if the code is unsound

module = Module("example")
module.functions.append(add)

vm = Interpreter(1000)
(result,) = vm.execute_function(module, 0, [])
print(result)              # U64(30)
print(vm.fuel_remaining()) # 997
```

Each instruction costs fuel, and running out raises `OutOfFuelError`. Other
runtime failures (stack underflow, division by zero, type mismatches, an
explicit abort) raise subclasses of `InterpreterError` from
`quantumvm.values`. Unsigned addition, subtraction and multiplication wrap
around at the width of the type.

## Verification errors

The verifier raises subclasses of `quantumvm.checks.VerifierError`, such as
`TypeMismatchError`, `StackUnderflowError`, `BorrowCheckingError`,
`ResourceSafetyViolation` and `MissingReturnError`. Structural problems found
while validating a function, module or package, such as a branch that lands
outside the code or an incompatible bytecode version, come back as
`ResourceSafetyViolation`.

## What it does not do

- The interpreter executes stack, constant (`LdTrue`, `LdFalse`, `LdU8` to
  `LdU64`, `LdU128`), local, arithmetic, bitwise, comparison, logical,
  branch, `Ret`, `Abort` and basic vector instructions. Every other
  instruction (calls, structs and references, object, cryptographic, event,
  cast, transaction and debug instructions) is charged fuel but otherwise has
  no effect.
- `Div` and the bitwise and ordering operations accept only `U8` and `U64`
  values; `Mod` accepts only `U64`.
- The verifier checks no stack effect for those same unexecuted instructions.
- The `Runtime` is not connected to the interpreter's instructions; it is a
  standalone record that callers use directly. Objects live only in memory.
- There is no command-line tool; the package is used as a library.