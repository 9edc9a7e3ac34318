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
# dustat returns the allocated size and the number of inodes below the
# path you specify, staying on one filesystem and counting hardlinked
# files only once.
#
#
# Library usage::
#
#     >>> from dustat import compute_usage
#     >>> usage = compute_usage('/srv')
#     >>> usage
#     UsageInfo(bytes=86558511104, inodes=123456)
#
#     >>> usage.bytes / (1024.0 * 1024 * 1024)
#     80.61365509033203
#
#     >>> compute_usage('/nonexistent')
#     Traceback (most recent call last):
#     ...
#     dustat.dustat.RootStatFailed: could not stat '/nonexistent' to get
#     inode usage: [Errno 2] No such file or directory: '/nonexistent'
#
from .dustat import (
    InvalidArgument, RootStatFailed, StatFailed, UnsupportedMetadata,
    UsageError, UsageInfo, UsageWalker, compute_usage)

__all__ = (
    'InvalidArgument', 'RootStatFailed', 'StatFailed', 'UnsupportedMetadata',
    'UsageError', 'UsageInfo', 'UsageWalker', 'compute_usage')
