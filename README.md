# telfs

The local metadata layer of a chunked, message-backed filesystem. Everything the
filesystem knows about files and directories lives in one SQLite database:
inodes, directory entries, chunk maps, extended attributes, settings and a
write-ahead journal. On top of that database sit a snapshot format, an
encrypted envelope for snapshots and a journal poster.

The package uses only the standard library.

## Modules

- `telfs.store.Store`: the metadata database with every operation on it.
  Opening creates the schema, the root directory (inode `1`,
  `telfs.database.ROOT_INO`), a random filesystem UUID and the default chunk
  size on first use; later opens leave existing data alone. It is a context
  manager and can be shared between threads.
- `telfs.types`: the records (`Inode`, `Dirent`, `DirentInfo`, `Chunk`,
  `SetAttrsPatch`, `JournalEntry`, `JournalOp`), the `Kind` enum
  (`FILE`, `DIR`, `SYMLINK`), `decode_op` and the error classes.
- `telfs.snapshot`: `take` and `restore` for gzipped database images.
- `telfs.envelope`: `wrap`, `unwrap` and helpers for the encrypted snapshot
  envelope.
- `telfs.poster.JournalPoster`: drains pending journal entries into a channel
  session that you supply.

## Installation

```
pip install .
```

## Usage

```python
from telfs.database import ROOT_INO
from telfs.store import Store
from telfs.types import Chunk, Inode, Kind, NotFoundError

with Store("/tmp/telfs/meta.sqlite") as store:
    ino = store.create_child(ROOT_INO, "notes.txt", Inode(kind=Kind.FILE, mode=0o100644))
    store.put_chunk(Chunk(ino=ino, idx=0, tg_message_id=42, size=4096))
    store.set_size(ino, 4096)
    store.set_xattr(ino, "user.tag", b"hello")

    print([entry.name for entry in store.readdir_info(ROOT_INO)])

    store.rename(ROOT_INO, "notes.txt", ROOT_INO, "renamed.txt")
    try:
        store.lookup(ROOT_INO, "notes.txt")
    except NotFoundError:
        pass
```

### Directory entries

`create_child`, `link`, `unlink` and `rename` each run in one transaction and
write a `JournalOp` to the journal in that same transaction. Unlinking the last
link of an inode deletes it, and its chunks, extended attributes and entries go
with it. `rename` replaces an existing target as `rename(2)` does, does nothing
when the target is another link of the same inode, and raises `IsDirError`,
`NotDirError`, `NotEmptyError` or `CycleError` where it must refuse.

### Chunks and dedup

`put_chunk`, `get_chunk`, `list_chunks`, `delete_chunk`, `delete_chunks_above`
and `all_chunks` manage the chunk map. `record_chunk_blob(digest, msg_id, size)`
indexes an uploaded blob by content hash; `reuse_chunk_by_hash(ino, idx, digest)`
returns `(True, msg_id, size)` and writes the chunk entry when the indexed
message is still referenced, and `(False, 0, 0)` otherwise.
`all_chunk_message_ids()` gives the set of live message ids, and
`prune_stale_chunk_blobs()` drops index entries that no chunk references.

### Settings

`fs_uuid()`, `chunk_size()` / `set_chunk_size(n)` (a power of two between
64 KiB and 1.5 GiB, checked by `telfs.database.validate_chunk_size`),
`trash_enabled()` / `set_trash_enabled(on)` and `trash_ttl()` /
`set_trash_ttl(timedelta)` (zero means one week, negative is refused).
`set_trash_enabled(False)` removes the setting and raises `NotFoundError` if it
was never set. `get_kv`, `put_kv` and `delete_kv` give raw access.

### Snapshots

```python
from telfs.snapshot import restore, take
from telfs.store import Store

with Store("/tmp/telfs/meta.sqlite") as store:
    snap = take(store)          # Snapshot(data, fs_uuid, journal_seq)

restore(snap.data, "/tmp/telfs/restored.sqlite")
```

`restore` checks that the image opens as a metadata database before it
replaces anything at the target path.

### Journal replay

```python
from telfs.types import decode_op

for entry in source_store.pending_journal():
    target_store.replay_op(decode_op(entry.op_json))
```

A create or link whose name already exists, an unlink of a missing entry and a
rename whose source is gone but whose destination exists count as already
applied.

### Encrypted envelope

`wrap(cipher, WrapOpts(mode=..., salt=..., argon=..., canary=..., wrapped_dek=...), plaintext)`
produces `b"TFSE"`, a version byte, a two-byte header length, a JSON header and
the sealed body. `cipher` is any object with `seal(ino, idx, plaintext)`; the
body is sealed under `(0, -1)`. `argon` must be JSON bytes. `unwrap`,
`unwrap_header_and_body`, `unwrap_body`, `envelope_kdf_params`,
`envelope_mode` and `is_wrapped` read envelopes back.

### Journal poster

```python
import threading
from telfs.poster import JournalPoster

poster = JournalPoster(store=store, session=session, interval=5.0)
stop = threading.Event()
threading.Thread(target=poster.run, args=(stop,)).start()
```

`session` must provide `upload_journal_op(op_json, seq, posted_at, fs_uuid)`.
Each posted entry is marked in the journal; on the first failure `drain_once`
raises and the rest stay pending. `run` logs failures and drains once more
after `stop` is set.

### Errors

Store failures raise subclasses of `telfs.types.MetaError`: `NotFoundError`,
`ExistsError`, `NotEmptyError`, `IsDirError`, `NotDirError` and `CycleError`.
Invalid arguments (chunk size, negative trash TTL, empty blob hash) raise
`ValueError`. Envelope problems raise `telfs.envelope.EnvelopeError`; snapshot
and restore problems raise `telfs.snapshot.SnapshotError`.

## What this package does not do

It holds metadata only. It does not mount a filesystem, has no command-line
tool, does not talk to any message channel itself (the poster needs a session
object from you), and includes no cipher or key derivation: `wrap` needs a
cipher object supplied by the caller, and the sealed body returned by `unwrap`
must be opened by that caller.

## Testing

```
pip install .[test]
pytest
```