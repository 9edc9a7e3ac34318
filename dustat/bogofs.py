# dustat -- deduplicated disk and inode usage from stat metadata
# Copyright (C) 2018  Walter Doekes, OSSO B.V.
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
# The GeneratedFilesystem contained herein is used by the dustat test
# cases. It pseudo-randomly generates an in-memory filesystem, so the
# UsageWalker can be tested on a consistent filesystem. On top of the
# generated tree, tests can add hardlinks, symlinks and mount points, and
# make entries vanish or become unreadable.
#
import errno
import os

from itertools import count
from random import Random

from .dustat import UsageInfo

ROOT_DEVICE = 2049  # makedev(8, 1), /dev/sda1


class Node:
    def __init__(self, name, size):
        self.name = name
        self.size = size
        self.st_dev = ROOT_DEVICE
        self.st_ino = None  # assigned by the filesystem
        self.st_nlink = 1
        self.has_blocks = True

    @property
    def st_blocks(self):  # for stat
        if not self.has_blocks:
            # Like os.stat_result on Windows.
            raise AttributeError('st_blocks')
        return ((self.size + 511) >> 9)

    @property
    def st_size(self):  # for stat
        return self.size


class DirNode(Node):
    def __init__(self, name):
        size = 4096  # bogus obviously, but most common
        super().__init__(name, size)
        self.dirs = []
        self.files = []  # everything that is not a dir
        self.links = []  # (name, node) for extra hardlinks

        self.st_mode = 16384  # for stat: 0o40000 S_ISDIR
        self.st_nlink = 2  # "." and the entry in the parent

    def generate(self, fs, maxdepth):
        # With the current FS generation parameters, maxdepth of 5 is
        # more than enough.
        assert 0 <= maxdepth < 6, 'invalid maxdepth value'

        # Generate dirs.
        if maxdepth > 0:
            dirs = fs.create_dirs()
            for dir_ in dirs:
                dir_.generate(fs, maxdepth - 1)
            self.dirs.extend(dirs)
            self.st_nlink += len(dirs)  # ".." of every subdir

        # Generate files.
        files = fs.create_files()
        self.files.extend(files)

    def names(self):
        return (
            [i.name for i in self.dirs] +
            [i.name for i in self.files] +
            [name for name, node in self.links])

    def children(self):
        return (
            [(i.name, i) for i in self.dirs] +
            [(i.name, i) for i in self.files] +
            list(self.links))


class RegularFileNode(Node):
    def __init__(self, name, size):
        super().__init__(name, size)

        self.st_mode = 32768  # for stat: 0o100000 S_ISREG


class SymlinkNode(Node):
    def __init__(self, name, target):
        super().__init__(name, len(target))
        self.target = target

        self.st_mode = 40960  # for stat: 0o120000 S_ISLNK

    @property
    def st_blocks(self):  # fast symlink, stored in the inode
        if not self.has_blocks:
            raise AttributeError('st_blocks')
        return 0


class GeneratedFilesystem:
    def __init__(self, seed=3, maxdepth=4):
        self._rand = Random(seed)
        self.randint = self._rand.randint
        self._inodes = count(2)

        self._root = DirNode('ROOT')
        self._root.generate(self, maxdepth)

        self._cache_dict = self.to_dict()
        for path in sorted(self._cache_dict):  # "/" first, ext4 root is 2
            self._cache_dict[path].st_ino = next(self._inodes)
        self._denied = set()
        self._denied_listing = {}  # path => errno

        # Call log, so tests can check what was (not) looked at.
        self.listed = []
        self.statted = []

    def create_unique(self, n):
        fmt = '{{:0{0}d}}'.format(len(str(n)))
        return [fmt.format(i) for i in range(n)]

    def create_dirs(self):
        n = self.how_many_dirs()
        return [DirNode('{}.d'.format(i)) for i in self.create_unique(n)]

    def create_files(self):
        n = self.how_many_files()
        return [RegularFileNode('{}.txt'.format(i), self.how_large_file())
                for i in self.create_unique(n)]

    def how_many_dirs(self):
        return self.randint(0, 20)

    def how_many_files(self):
        n = self.randint(0, 80)
        if n < 70:
            return n
        n -= 70
        return self.randint(0, 2 ** n)

    def how_large_file(self):
        if self.randint(0, 80):
            return self.randint(1, 2 ** 16)  # not so large
        return self.randint(1, 2 ** 31)      # large

    def to_dict(self):
        ret = {}
        self._to_dict(ret, '', self._root)
        root_path = ret.pop('')  # for "/ROOT" hack
        assert root_path
        ret['/'] = root_path
        return ret

    def _to_dict(self, ret, prefix, node):
        prefix += '/' + node.name
        ret[prefix[5:]] = node  # drop "/ROOT"

        for dir_ in node.dirs:
            self._to_dict(ret, prefix, dir_)
        for file_ in node.files:
            ret[(prefix + '/' + file_.name)[5:]] = file_

    def _get_node(self, path):
        if path in self._denied:
            raise OSError(
                errno.EACCES, 'Permission denied: {0!r}'.format(path))
        try:
            node = self._cache_dict[path]
        except KeyError:
            raise OSError(
                errno.ENOENT,
                'No such file or directory: {0!r}'.format(path)) from None
        return node

    def _get_parent(self, path):
        parent, name = path.rsplit('/', 1)
        return self._get_node(parent or '/'), name

    def _add(self, path, node):
        parent, name = self._get_parent(path)
        assert isinstance(parent, DirNode), parent
        assert path not in self._cache_dict, path
        node.name = name
        node.st_dev = parent.st_dev
        node.st_ino = next(self._inodes)
        if isinstance(node, DirNode):
            parent.dirs.append(node)
            parent.st_nlink += 1
        else:
            parent.files.append(node)
        self._cache_dict[path] = node
        return node

    def add_dir(self, path):
        "Add an empty directory at path."
        return self._add(path, DirNode(None))

    def add_file(self, path, size):
        "Add a regular file at path."
        return self._add(path, RegularFileNode(None, size))

    def symlink(self, target, path):
        "Add a symlink at path, pointing to target (which is not checked)."
        return self._add(path, SymlinkNode(None, target))

    def link(self, src, dst):
        "Add an extra hardlink dst to the file at src."
        node = self._get_node(src)
        assert not isinstance(node, DirNode), 'cannot hardlink dirs'
        parent, name = self._get_parent(dst)
        assert dst not in self._cache_dict, dst
        parent.links.append((name, node))
        node.st_nlink += 1
        self._cache_dict[dst] = node
        return node

    def mount(self, path, device):
        "Pretend that another filesystem is mounted on path."
        node = self._get_node(path)
        self._set_device(node, device)

    def _set_device(self, node, device):
        node.st_dev = device
        if isinstance(node, DirNode):
            for name, child in node.children():
                self._set_device(child, device)

    def hide_from_stat(self, path):
        """'Delete' a file, so it will turn up in the listdir, but fail
        on stat.

        This is used so check that we cope with listdir/stat races.
        """
        del self._cache_dict[path]

    def deny(self, path):
        "Make stat (and listdir) of path fail with EACCES."
        self._denied.add(path)

    def deny_listing(self, path, err=errno.EACCES):
        "Make listdir of path fail with err; stat still works."
        self._denied_listing[path] = err

    def strip_blocks(self, path):
        "Make the stat result of path lack st_blocks."
        self._get_node(path).has_blocks = False

    def _realpath(self, path, follow):
        """
        Return path with the symlinks in it replaced by their targets.

        The last component is only resolved if follow is set, like stat
        versus lstat. Unknown components are left alone, so the lookup
        that follows fails with ENOENT.
        """
        parts = [i for i in path.split('/') if i]
        resolved = ''
        for i, name in enumerate(parts):
            resolved += '/' + name
            node = self._cache_dict.get(resolved)
            if isinstance(node, SymlinkNode) and (
                    follow or i < len(parts) - 1):
                resolved = self._realpath(node.target, True).rstrip('/')
        return resolved or '/'

    def listdir(self, path):
        self.listed.append(path)
        path = self._realpath(path, True)
        node = self._get_node(path)
        if path in self._denied_listing:
            err = self._denied_listing[path]
            raise OSError(err, '{0}: {1!r}'.format(os.strerror(err), path))
        if not isinstance(node, DirNode):
            raise OSError(
                errno.ENOTDIR, 'Not a directory: {0!r}'.format(path))
        return node.names()

    def stat(self, path):
        self.statted.append(path)
        return self._get_node(self._realpath(path, True))

    def lstat(self, path):
        # A trailing slash makes lstat follow the symlink, as in POSIX.
        self.statted.append(path)
        return self._get_node(self._realpath(path, path.endswith('/')))

    def get_usage(self, path='/'):
        """
        Return the UsageInfo we expect the walker to find for path.

        This walks the node structure instead of the paths, and
        deduplicates on node identity instead of on inode number.
        """
        root = self._cache_dict[path]
        seen = set()
        total_bytes, inodes = self._get_usage(path, root, root.st_dev, seen)
        return UsageInfo(bytes=total_bytes, inodes=inodes)

    def _get_usage(self, path, node, device, seen):
        if self._cache_dict.get(path) is not node or node.st_dev != device:
            return 0, 0  # vanished, or on another filesystem

        total_bytes = inodes = 0
        if id(node) not in seen:
            seen.add(id(node))
            total_bytes += node.st_blocks << 9
            inodes += 1

        if isinstance(node, DirNode):
            prefix = '' if path == '/' else path
            for name, child in node.children():
                child_bytes, child_inodes = self._get_usage(
                    prefix + '/' + name, child, device, seen)
                total_bytes += child_bytes
                inodes += child_inodes
        return total_bytes, inodes


class EmptyFilesystem(GeneratedFilesystem):
    "Just the root directory; populate it with add_dir/add_file."

    def __init__(self):
        super().__init__(seed=0, maxdepth=0)

    def how_many_dirs(self):
        return 0

    def how_many_files(self):
        return 0

