import pytest

from components.blobfacade.adapters.inmemory import MemoryDriver
from components.blobfacade.bucket import Bucket
from components.blobfacade.contracts import DriverListObject, DriverListOptions, ListOptions, ListPage
from components.blobfacade.errors import BlobUpstream, ErrorCode
from components.blobfacade.listing import ListIterator

KEYS = ["a", "b", "c", "d", "e", "f", "g", "h", "i", "j"]


class PageCountingDriver(MemoryDriver):
    def __init__(self, **kw):
        super().__init__(**kw)
        self.fetches = 0

    def list_paged(self, opts, cancel):
        self.fetches += 1
        return super().list_paged(opts, cancel)


def filled(page_size, keys=KEYS):
    driver = PageCountingDriver(page_size=page_size)
    bucket = Bucket(driver)
    # insert out of order; listings must still come back sorted
    for k in reversed(keys):
        bucket.write_all(k, k.encode())
    return bucket, driver


@pytest.mark.parametrize("page_size", [1, 2, 3, 7, 10, 1000])
def test_every_key_once_in_order_for_any_page_size(page_size):
    bucket, _ = filled(page_size)
    assert [o.key for o in bucket.list()] == KEYS


def test_pages_are_fetched_lazily():
    bucket, driver = filled(3)
    it = bucket.list()
    assert driver.fetches == 0
    assert [next(it).key for _ in range(3)] == ["a", "b", "c"]
    assert driver.fetches == 1
    assert next(it).key == "d"
    assert driver.fetches == 2
    list(it)
    assert driver.fetches == 4


def test_page_size_option_overrides_driver_default():
    bucket, driver = filled(1000)
    assert len(list(bucket.list(ListOptions(page_size=4)))) == len(KEYS)
    assert driver.fetches == 3


def test_list_objects_carry_size_and_md5():
    bucket, _ = filled(1000, ["only"])
    (obj,) = list(bucket.list())
    assert obj.key == "only"
    assert obj.size == 4
    assert obj.md5 is not None
    assert obj.mod_time is not None
    assert not obj.is_dir


def test_delimiter_collapses_directories():
    bucket, _ = filled(1000, ["a/x", "a/y", "b"])
    objs = list(bucket.list(ListOptions(delimiter="/")))
    assert [(o.key, o.is_dir) for o in objs] == [("a/", True), ("b", False)]
    assert objs[0].size == 0 and objs[0].md5 is None


@pytest.mark.parametrize("page_size", [1, 2, 1000])
def test_delimiter_with_prefix_and_paging(page_size):
    keys = ["dir/a", "dir/sub/1", "dir/sub/2", "dir/sub2/x", "dir/z", "other"]
    bucket, _ = filled(page_size, keys)
    objs = list(bucket.list(ListOptions(prefix="dir/", delimiter="/")))
    assert [o.key for o in objs] == ["dir/a", "dir/sub/", "dir/sub2/", "dir/z"]


def test_prefix_without_delimiter_is_flat():
    bucket, _ = filled(2, ["p/1", "p/2/3", "q"])
    assert [o.key for o in bucket.list(ListOptions(prefix="p/"))] == ["p/1", "p/2/3"]


def test_empty_listing():
    bucket, _ = filled(5, [])
    it = bucket.list()
    assert it.next_object() is None
    assert it.next_object() is None


def test_next_object_walks_then_returns_none():
    bucket, _ = filled(2, ["x", "y", "z"])
    it = bucket.list()
    assert [it.next_object().key for _ in range(3)] == ["x", "y", "z"]
    assert it.next_object() is None


def test_before_list_sees_driver_options():
    bucket, _ = filled(2, ["x", "y", "z"])
    seen = []
    list(bucket.list(ListOptions(prefix="", before_list=seen.append)))
    assert len(seen) == 2
    assert all(isinstance(o, DriverListOptions) for o in seen)
    assert seen[1].page_token == "y"


# ---- Fake drivers ----
class ScriptedDriver:
    """Returns canned pages keyed by page token."""

    name = "scripted"

    def __init__(self, pages):
        self.pages = pages
        self.tokens = []

    def list_paged(self, opts, cancel):
        self.tokens.append(opts.page_token)
        return self.pages[opts.page_token]

    def error_code(self, exc):
        return ErrorCode.UNKNOWN


class FailingDriver(ScriptedDriver):
    def list_paged(self, opts, cancel):
        raise ConnectionError("listing unavailable")


def test_same_directory_across_pages_is_reported_once():
    pages = {
        "": ListPage(objects=[DriverListObject(key="a/1"), DriverListObject(key="a/2")], next_page_token="t1"),
        "t1": ListPage(objects=[DriverListObject(key="a/3"), DriverListObject(key="b")]),
    }
    driver = ScriptedDriver(pages)
    it = ListIterator(driver, DriverListOptions(delimiter="/"))
    assert [(o.key, o.is_dir) for o in it] == [("a/", True), ("b", False)]
    assert driver.tokens == ["", "t1"]


def test_empty_page_with_token_keeps_going():
    pages = {
        "": ListPage(objects=[], next_page_token="t1"),
        "t1": ListPage(objects=[DriverListObject(key="k")]),
    }
    it = ListIterator(ScriptedDriver(pages), DriverListOptions())
    assert [o.key for o in it] == ["k"]


def test_fetch_error_is_wrapped():
    it = ListIterator(FailingDriver({}), DriverListOptions())
    with pytest.raises(BlobUpstream) as ei:
        next(it)
    assert isinstance(ei.value.__cause__, ConnectionError)
