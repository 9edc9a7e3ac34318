#!/usr/bin/env python3
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
# *dustat* computes the allocated size and the inode count of a directory
# tree, like ``du -s`` and ``find -xdev | wc -l`` combined, but without
# spawning any processes: it walks the tree and reads the stat metadata
# itself.
#
# Example usage::
#
#     $ dustat /srv
#      80.6 G  /srv/
#       -----
#      86558511104  bytes
#           123456  inodes
#
# Properties of the walk:
#
# * It stays on the filesystem of PATH. Entries on another device (mount
#   points) are not counted and directories there are not descended into.
#
# * Files with more than one hard link are counted once, no matter how many
#   paths in the tree lead to them.
#
# * Files that vanish while we're walking are skipped. Any other error
#   (EPERM, EIO, ...) aborts the walk: there are no partial results.
#
# **NOTE**: Sizes are the allocated sizes (``st_blocks * 512``), not the
# apparent file sizes. Sparse and compressed files count for what they use.
#
import sys
import warnings

from collections import namedtuple
from os import listdir, lstat, path, stat
from stat import S_ISDIR


class OsWarning(UserWarning):
    pass


class UsageError(Exception):
    "Base class for all dustat errors."


class InvalidArgument(UsageError, ValueError):
    pass


class _PathError(UsageError):
    message = None

    def __init__(self, pathname, cause=None):
        self.path = pathname
        self.cause = cause
        if cause is None:
            text = self.message.format(pathname)
        else:
            text = '{}: {}'.format(self.message.format(pathname), cause)
        super().__init__(text)


class RootStatFailed(_PathError):
    message = 'could not stat {!r} to get inode usage'


class StatFailed(_PathError):
    message = 'unable to count inodes for {!r}'


class UnsupportedMetadata(_PathError):
    message = 'unsupported file metadata for getting inode usage of {!r}'


UsageInfo = namedtuple('UsageInfo', 'bytes inodes')
EntryMetadata = namedtuple('EntryMetadata', 'device inode nlink blocks')

# st_blocks is always in units of 512, whatever st_blksize says.
BLOCK_SIZE = 512


def entry_metadata(st, pathname):
    """
    Return EntryMetadata for a stat result, or raise UnsupportedMetadata.

    Platforms without st_blocks (Windows), or stat-alikes that leave
    fields unset, cannot be deduplicated or bounded by device. We refuse
    instead of guessing.
    """
    try:
        meta = EntryMetadata(
            st.st_dev, st.st_ino, st.st_nlink, st.st_blocks)
    except AttributeError:
        raise UnsupportedMetadata(pathname) from None
    if None in meta:
        raise UnsupportedMetadata(pathname)
    return meta


class UsageCounter:
    "Totals of one walk, with the inodes (nlink > 1) counted so far."

    def __init__(self):
        self.bytes = 0
        self.inodes = 0
        self.seen = set()

    def add(self, meta):
        "Count meta, unless it is a hardlink to something already counted."
        if meta.nlink > 1:
            if meta.inode in self.seen:
                return
            self.seen.add(meta.inode)
        self.bytes += meta.blocks * BLOCK_SIZE
        self.inodes += 1

    def usage_info(self):
        return UsageInfo(bytes=self.bytes, inodes=self.inodes)


class UsageWalker:
    "Disk and inode usage walker"

    def __init__(self, pathname):
        if not pathname:
            raise InvalidArgument('invalid directory {!r}'.format(pathname))
        self._root = pathname
        self._path = self._normpath(pathname)

    def _normpath(self, pathname):
        "Return path normalized for joining: no trailing slash."
        pathname = pathname.rstrip('/')  # "/" becomes ""
        assert not pathname.endswith('/'), pathname
        return pathname

    def walk(self):
        """
        Walk the tree and return its UsageInfo.

        Every call gets its own UsageCounter, so a walker can be reused and
        two calls never influence each other.
        """
        try:
            root_st = stat(self._root)
        except OSError as e:
            raise RootStatFailed(self._root, e) from e
        root_device = entry_metadata(root_st, self._root).device

        counter = UsageCounter()
        self._walk(root_device, counter)
        return counter.usage_info()

    def _walk(self, root_device, counter):
        # Pre-order depth first, using our own stack of (dirname, names)
        # iterators so deep trees don't hit the recursion limit.
        #
        # The root is looked at as given: lstat("link/") follows the
        # symlink, lstat("link") does not. Children are joined to the
        # path without the trailing slash.
        if not self._visit(self._root, root_device, counter):
            return
        stack = []
        self._push(stack, self._path, self._root)

        while stack:
            dirname, names = stack[-1]
            for name in names:
                pathname = dirname + '/' + name
                if self._visit(pathname, root_device, counter):
                    self._push(stack, pathname, pathname)
                    break
            else:
                stack.pop()

    def _visit(self, pathname, root_device, counter):
        "Count pathname; return True if it is a directory to descend into."
        try:
            st = lstat(pathname)
        except FileNotFoundError:
            # Expected if files appear/vanish while we walk.
            return False
        except OSError as e:
            raise StatFailed(pathname, e) from e

        meta = entry_metadata(st, pathname)
        if meta.device != root_device:
            # Another filesystem. Don't count it, don't descend into it.
            return False

        counter.add(meta)
        return S_ISDIR(st.st_mode)

    def _push(self, stack, dirname, listpath):
        try:
            names = listdir(listpath)
        except FileNotFoundError:
            # Counted, but gone before we could look inside.
            return
        except OSError as e:
            # PermissionError: [Errno 13] Permission denied:
            #   '/sys/fs/fuse/connections/85'
            raise StatFailed(listpath, e) from e
        names.sort()
        stack.append((dirname, iter(names)))


def compute_usage(pathname):
    "Return the UsageInfo of the tree at pathname."
    return UsageWalker(pathname).walk()


def human(value):
    "If val>=1000 return val/1024+KiB, etc."
    if value >= 1073741824000:
        return '{:.1f} T'.format(value / 1099511627776.0)
    if value >= 1048576000:
        return '{:.1f} G'.format(value / 1073741824.0)
    if value >= 1024000:
        return '{:.1f} M'.format(value / 1048576.0)
    if value >= 1000:
        return '{:.1f} K'.format(value / 1024.0)
    return '{}   B'.format(value)


def main():
    pathname = None
    compare = False
    if len(sys.argv) == 2:
        pathname = sys.argv[1]

    elif len(sys.argv) == 3:
        if sys.argv[1] == '--compare':
            pathname = sys.argv[2]
        elif sys.argv[2] == '--compare':
            pathname = sys.argv[1]
        compare = True

    if pathname is None:
        sys.stderr.write('Usage: dustat [--compare] PATH\n')
        sys.exit(1)

    try:
        run(pathname, compare)
    except UsageError as e:
        sys.stderr.write('dustat: {}\n'.format(e))
        sys.exit(1)


def run(pathname, compare):
    usage = compute_usage(pathname)
    name = pathname if pathname.endswith('/') else pathname + '/'
    sys.stdout.write(' {0:>7s}  {1}\n'.format(human(usage.bytes), name))
    sys.stdout.write('   -----\n')
    sys.stdout.write(' {0:>12d}  bytes\n'.format(usage.bytes))
    sys.stdout.write(' {0:>12d}  inodes\n'.format(usage.inodes))

    if compare:
        # Imported here: only the comparison needs subprocesses.
        from .external import du_usage, find_inode_usage
        du_bytes = du_usage(pathname)
        find_inodes = find_inode_usage(pathname)
        sys.stdout.write('   -----\n')
        sys.stdout.write(' {0:>12d}  bytes (du -s, {1:+d})\n'.format(
            du_bytes, du_bytes - usage.bytes))
        sys.stdout.write(' {0:>12d}  inodes (find -xdev, {1:+d})\n'.format(
            find_inodes, find_inodes - usage.inodes))


def formatwarning(message, category, filename, lineno, line=None):
    """
    Override default Warning layout, from:

        /PATH/TO/external.py:96: OsWarning:
            Killing cmd ['du', '-s', '/srv'] due to timeout (120s)
          warnings.warn(...)

    To:

        external.py:96: OsWarning:
            Killing cmd ['du', '-s', '/srv'] due to timeout (120s)
    """
    return '{basename}:{lineno}: {category}: {message}\n'.format(
        basename=path.basename(filename), lineno=lineno,
        category=category.__name__, message=message)
warnings.formatwarning = formatwarning  # noqa


if __name__ == '__main__':
    main()
