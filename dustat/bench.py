# dustat -- deduplicated disk and inode usage from stat metadata
# Copyright (C) 2017,2018,2019  Walter Doekes, OSSO B.V.
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <http://www.gnu.org/licenses/>.
#
#
# Compare the stat walker against du+find on a real directory::
#
#     $ dustat-bench /usr/share 3
#     BenchmarkDiskUsageNew         3      412339871 ns/op
#     BenchmarkDiskUsageOld         3      958120443 ns/op
#        -----
#       1853820928  1853820928  bytes (new, old)
#           104330      104330  inodes (new, old)
#
# Note that the caches are warm after the first round, so use enough
# rounds, or drop the caches in between if you want cold numbers.
#
import sys

from time import perf_counter

from .dustat import UsageError, compute_usage
from .external import DEFAULT_TIMEOUT, du_usage, find_inode_usage

DEFAULT_ROUNDS = 5


def bench_new(pathname):
    return compute_usage(pathname)


def bench_old(pathname, timeout=DEFAULT_TIMEOUT):
    return (
        du_usage(pathname, timeout=timeout),
        find_inode_usage(pathname, timeout=timeout))


def benchmark(func, rounds, *args):
    "Run func rounds times; return (ns per op, last result)."
    assert rounds > 0, rounds
    result = None
    t0 = perf_counter()
    for i in range(rounds):
        result = func(*args)
    elapsed = perf_counter() - t0
    return int(elapsed * 1e9 / rounds), result


def main():
    if len(sys.argv) not in (2, 3):
        sys.stderr.write('Usage: dustat-bench PATH [ROUNDS]\n')
        sys.exit(1)

    pathname = sys.argv[1]
    try:
        rounds = int(sys.argv[2]) if len(sys.argv) == 3 else DEFAULT_ROUNDS
    except ValueError:
        rounds = 0
    if rounds < 1:
        sys.stderr.write('dustat-bench: ROUNDS must be a positive integer\n')
        sys.exit(1)

    try:
        run(pathname, rounds)
    except UsageError as e:
        sys.stderr.write('dustat-bench: {}\n'.format(e))
        sys.exit(1)


def run(pathname, rounds):
    ns_new, new = benchmark(bench_new, rounds, pathname)
    sys.stdout.write('BenchmarkDiskUsageNew  {:8d}  {:14d} ns/op\n'.format(
        rounds, ns_new))
    ns_old, (old_bytes, old_inodes) = benchmark(bench_old, rounds, pathname)
    sys.stdout.write('BenchmarkDiskUsageOld  {:8d}  {:14d} ns/op\n'.format(
        rounds, ns_old))

    sys.stdout.write('   -----\n')
    sys.stdout.write(' {:>12d}  {:>12d}  bytes (new, old)\n'.format(
        new.bytes, old_bytes))
    sys.stdout.write(' {:>12d}  {:>12d}  inodes (new, old)\n'.format(
        new.inodes, old_inodes))


if __name__ == '__main__':
    main()
