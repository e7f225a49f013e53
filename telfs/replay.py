"""Replaying journal operations onto a restored metadata store."""

from __future__ import annotations

from telfs.types import (
    OP_CREATE_CHILD,
    OP_LINK,
    OP_RENAME,
    OP_SET_SIZE,
    OP_UNLINK,
    ExistsError,
    Inode,
    JournalOp,
    MetaError,
    NotFoundError,
)


class ReplayMixin:
    """Journal replay, mixed into a store that has the dirent and inode operations."""

    def replay_op(self, op: JournalOp) -> None:
        """Apply one journal op, tolerating the effects of an earlier application.

        A create or link whose name already exists, an unlink of a missing
        entry, and a rename whose source is gone but whose destination exists
        are all treated as already applied. Anything else that fails raises.
        """
        if op.op == OP_CREATE_CHILD:
            if op.kind is None:
                raise MetaError("replay create: journal op has no inode kind")
            child = Inode(
                kind=op.kind,
                mode=op.mode,
                uid=op.uid,
                gid=op.gid,
                nlink=1,
                mtime=op.mtime,
                ctime=op.mtime,
                symlink_target=op.symlink_target,
            )
            try:
                self.create_child(op.parent, op.name, child)
            except ExistsError:
                pass
        elif op.op == OP_LINK:
            try:
                self.link(op.parent, op.name, op.target)
            except ExistsError:
                pass
        elif op.op == OP_UNLINK:
            try:
                self.unlink(op.parent, op.name)
            except NotFoundError:
                pass
        elif op.op == OP_RENAME:
            try:
                self.rename(op.parent, op.name, op.new_parent, op.new_name)
            except NotFoundError:
                try:
                    self.lookup(op.new_parent, op.new_name)
                except NotFoundError:
                    pass
                else:
                    return
                raise
        elif op.op == OP_SET_SIZE:
            self.set_size(op.ino, op.size)
        else:
            raise MetaError(f"unknown journal op kind {op.op!r}")