"""
Command-line interface for tensorpickle.

This module provides CLI commands for disassembling and inspecting
pickle streams and for benchmarking tensor round trips.
"""

import argparse
import json
import logging
import sys
import time
from typing import Any, Dict, List

import torch

from .core.tensor import TensorRef
from .core.tensor_table import TensorTable
from .exceptions import TensorPickleError
from .protocol.disassembler import count_opcodes, format_disassembly
from .serialization import pickle_to_buffer, unpickle_from_buffer
from .types.values import ClassDescriptor, CustomObject


def setup_logging(level: str = "WARNING") -> None:
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)-8s [%(name)s:%(funcName)s] : %(message)s',
    )


def _read_file(path: str) -> bytes:
    with open(path, 'rb') as f:
        return f.read()


def _write_report(report: Dict[str, Any], output: str = None) -> None:
    if output:
        with open(output, 'w') as f:
            json.dump(report, f, indent=2)
    else:
        print(json.dumps(report, indent=2))


def describe_value(value: Any, max_depth: int = 8) -> Any:
    """JSON-friendly summary of an unpickled value."""
    if max_depth <= 0:
        return "..."
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, TensorRef):
        return {
            'tensor': {
                'dtype': value.dtype,
                'shape': list(value.shape),
                'nbytes': value.nbytes
            }
        }
    if isinstance(value, CustomObject):
        return {
            'object': value.qualified_name,
            'fields': {
                str(name): describe_value(field, max_depth - 1) 
                for name, field in value.fields.items()
            }
        }
    if isinstance(value, (list, tuple)):
        return [describe_value(item, max_depth - 1) for item in value]
    if isinstance(value, dict):
        return {str(key): describe_value(item, max_depth - 1) for key, item in value.items()}
    if isinstance(value, bytes):
        return f"<{len(value)} bytes>"
    return repr(value)


def dis_command():
    """CLI command for printing the opcode listing of a pickle file."""
    parser = argparse.ArgumentParser(description='Disassemble a tensorpickle stream')
    parser.add_argument('path', help='Pickle file to disassemble')
    args = parser.parse_args()
    
    print(format_disassembly(_read_file(args.path)))


def inspect_command():
    """CLI command for summarizing the values in a pickle file."""
    parser = argparse.ArgumentParser(description='Inspect a tensorpickle stream')
    parser.add_argument('path', help='Pickle file to inspect')
    parser.add_argument('--tensors', type=int, default=0,
                       help='Size of the tensor table the stream was written against')
    parser.add_argument('--output', type=str, help='Output file for the report')
    parser.add_argument('--log-level', default='WARNING', help='Logging level')
    args = parser.parse_args()
    
    setup_logging(args.log_level)
    data = _read_file(args.path)
    
    # Tensor bytes are not available here; stand-ins keep indices resolvable.
    table = None
    if args.tensors:
        table = TensorTable(TensorRef(b'', 'uint8', (0,)) for _ in range(args.tensors))
    
    values = unpickle_from_buffer(
        data,
        tensor_table=table,
        class_resolver=lambda name: ClassDescriptor(name)
    )
    
    report = {
        'size': len(data),
        'opcodes': {opcode.name: count for opcode, count in sorted(count_opcodes(data).items())},
        'values': [describe_value(value) for value in values]
    }
    _write_report(report, args.output)


def benchmark_command():
    """CLI command for benchmarking tensor round trips."""
    parser = argparse.ArgumentParser(description='Benchmark tensorpickle round trips')
    parser.add_argument('--tensor-size', type=int, nargs='+', default=[256, 256],
                       help='Tensor dimensions')
    parser.add_argument('--num-tensors', type=int, default=16,
                       help='Number of tensors per pickled value')
    parser.add_argument('--iterations', type=int, default=10,
                       help='Number of benchmark iterations')
    parser.add_argument('--output', type=str, help='Output file for results')
    args = parser.parse_args()
    
    results = run_benchmark(args.tensor_size, args.num_tensors, args.iterations)
    _write_report(results, args.output)


def _summarize(times: List[float]) -> Dict[str, Any]:
    return {
        'mean': sum(times) / len(times),
        'min': min(times),
        'max': max(times),
        'all': times
    }


def run_benchmark(tensor_size: List[int], num_tensors: int, iterations: int) -> Dict[str, Any]:
    """Time inline and table-mode round trips of a list of random tensors."""
    value = {
        f"param_{i}": TensorRef.from_tensor(torch.randn(*tensor_size, dtype=torch.float32))
        for i in range(num_tensors)
    }
    
    results = {
        'config': {
            'tensor_size': tensor_size,
            'num_tensors': num_tensors,
            'iterations': iterations
        },
        'results': {}
    }
    
    for mode in ('inline', 'table'):
        pickle_times = []
        unpickle_times = []
        size = 0
        for _ in range(iterations):
            table = TensorTable() if mode == 'table' else None
            
            start_time = time.perf_counter()
            data = pickle_to_buffer(value, table)
            pickle_times.append(time.perf_counter() - start_time)
            
            start_time = time.perf_counter()
            unpickle_from_buffer(data, tensor_table=table)
            unpickle_times.append(time.perf_counter() - start_time)
            size = len(data)
        
        results['results'][mode] = {
            'stream_bytes': size,
            'pickle_times': _summarize(pickle_times),
            'unpickle_times': _summarize(unpickle_times)
        }
    
    return results


COMMANDS = {
    'dis': dis_command,
    'inspect': inspect_command,
    'benchmark': benchmark_command,
}


def main() -> int:
    if len(sys.argv) < 2:
        print("Usage: python -m tensorpickle.cli <command>")
        print(f"Commands: {', '.join(COMMANDS)}")
        return 1
    
    command = sys.argv[1]
    sys.argv = [sys.argv[0]] + sys.argv[2:]
    
    handler = COMMANDS.get(command)
    if handler is None:
        print(f"Unknown command: {command}")
        return 1
    
    try:
        handler()
    except TensorPickleError as ex:
        print(f"error: {ex.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
