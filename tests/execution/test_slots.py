"""Tests for slot allocation and the provisioned trampoline classes."""

import pytest

from jobloom import mapreduce as mr
from jobloom.core.conf import Configuration, qualified_name
from jobloom.core.errors import BindingError, SlotCapacityError
from jobloom.execution.behaviors import behavior
from jobloom.execution.context import TaskContext
from jobloom.execution.slots import (
    SLOT_CAPACITY,
    MapperSlot,
    PartitionerSlot,
    Role,
    allocate,
    load_slot,
    read_entry,
    slot_class,
    slot_name,
)


class ListWriter:
    def __init__(self):
        self.records = []

    def write(self, key, val):
        self.records.append((key, val))

    def close(self, context):
        pass


def scale(conf, factor, label):
    def run(context, input):
        return ((label, v * factor) for v in mr.vals(input))

    return run


def upper_raw(conf):
    def run(context):
        for key, val in context.input:
            context.write(key.upper(), val)

    return run


def first_letter(conf):
    def run(key, val, n):
        return ord(key[0])

    return run


def lookup(conf, table):
    def run(context, input):
        return ((table[k], v) for k, v in input)

    return run


def broken(conf):
    raise RuntimeError("cannot build")


def _run(cls, conf, records):
    writer = ListWriter()
    context = TaskContext(conf, input=records, writer=writer)
    cls().run(context)
    return writer.records


class TestAllocate:
    """Binding behaviors to slots through the configuration."""

    def test_first_allocation_uses_slot_zero(self):
        conf, cls = mr.mapper(Configuration(), scale, 2, "x")

        assert cls is slot_class(Role.MAP, 0)
        assert issubclass(cls, MapperSlot)
        assert conf["jobloom.map.next"] == "1"
        assert conf["jobloom.map.0.behavior"] == qualified_name(scale)
        assert conf["jobloom.map.0.args"] == '[2, "x"]'

    def test_indices_increase_and_are_never_reused(self):
        conf = Configuration()
        classes = []
        for _ in range(3):
            conf, cls = mr.mapper(conf, scale, 1, "y")
            classes.append(cls)

        assert [c.index for c in classes] == [0, 1, 2]
        assert conf.get_int("jobloom.map.next") == 3

    def test_roles_count_independently(self):
        conf, m = mr.mapper(Configuration(), scale, 1, "a")
        conf, r = mr.reducer(conf, scale, 1, "b")

        assert m.index == 0
        assert r.index == 0
        assert r.role == Role.REDUCE

    def test_input_configuration_is_untouched(self):
        base = Configuration()
        mr.mapper(base, scale, 1, "a")
        assert "jobloom.map.next" not in base

    def test_capacity_is_enforced(self):
        conf = Configuration()
        for _ in range(SLOT_CAPACITY):
            conf, _ = mr.combiner(conf, scale, 1, "z")

        with pytest.raises(SlotCapacityError) as exc:
            mr.combiner(conf, scale, 1, "z")
        assert exc.value.context.role == "combine"

    def test_lambda_rejected(self):
        with pytest.raises(BindingError):
            allocate(Role.MAP, Configuration(), lambda conf: None)

    def test_unserializable_args_rejected(self):
        with pytest.raises(BindingError):
            mr.mapper(Configuration(), scale, object(), "x")

    def test_int_keyed_dict_args_rejected(self):
        with pytest.raises(BindingError) as exc:
            mr.mapper(Configuration(), lookup, {1: "one"})
        assert exc.value.context.role == "map"

    def test_tuple_args_rejected(self):
        with pytest.raises(BindingError):
            mr.mapper(Configuration(), lookup, (1, 2))

    def test_rejected_binding_leaves_slot_free(self):
        conf = Configuration()
        with pytest.raises(BindingError):
            mr.mapper(conf, lookup, (1, 2))
        conf, cls = mr.mapper(conf, lookup, {"1": "one"})

        assert cls.index == 0
        assert _run(cls, conf, [("1", "x")]) == [("one", "x")]

    def test_read_entry(self):
        conf, _ = mr.mapper(Configuration(), scale, 3, "k")
        entry = read_entry(conf, Role.MAP, 0)

        assert entry.behavior_ref == qualified_name(scale)
        assert entry.args == (3, "k")

    def test_read_unbound_entry(self):
        with pytest.raises(BindingError):
            read_entry(Configuration(), Role.REDUCE, 5)


class TestSlotClasses:
    """Provisioned classes resolve by name and run their bound behavior."""

    def test_every_role_is_provisioned(self):
        for role in Role:
            assert slot_class(role, SLOT_CAPACITY - 1).index == SLOT_CAPACITY - 1
        with pytest.raises(SlotCapacityError):
            slot_class(Role.MAP, SLOT_CAPACITY)

    def test_load_by_name(self):
        cls = slot_class(Role.REDUCE, 7)
        assert load_slot(slot_name(cls)) is cls
        assert slot_name(cls) == "jobloom.execution.slots:Reducer_7"

    def test_bound_behavior_runs_with_its_args(self):
        conf, cls = mr.mapper(Configuration(), scale, 10, "out")
        assert _run(cls, conf, [(0, 1), (1, 2)]) == [("out", 10), ("out", 20)]

    def test_same_binding_same_output(self):
        conf, cls = mr.mapper(Configuration(), scale, 3, "t")
        records = [(0, 1), (1, 5)]
        assert _run(cls, conf, records) == _run(cls, conf, records)

    def test_slots_bound_in_one_conf_are_independent(self):
        conf, first = mr.mapper(Configuration(), scale, 1, "one")
        conf, second = mr.mapper(conf, scale, 2, "two")

        assert _run(first, conf, [(0, 4)]) == [("one", 4)]
        assert _run(second, conf, [(0, 4)]) == [("two", 8)]

    def test_raw_behavior_gets_only_the_context(self):
        behavior(raw=True)(upper_raw)
        conf, cls = mr.mapper(Configuration(), upper_raw)
        assert _run(cls, conf, [("a", 1), ("b", 2)]) == [("A", 1), ("B", 2)]

    def test_registered_alias(self):
        behavior("tests.scale")(scale)
        conf, cls = mr.mapper(Configuration(), "tests.scale", 2, "alias")

        assert conf["jobloom.map.0.behavior"] == qualified_name(scale)
        assert _run(cls, conf, [(0, 1)]) == [("alias", 2)]

    def test_setup_failure_is_a_binding_error(self):
        conf, cls = mr.mapper(Configuration(), broken)
        with pytest.raises(BindingError) as exc:
            _run(cls, conf, [(0, 1)])
        assert exc.value.context.slot == 0
        assert isinstance(exc.value.__cause__, RuntimeError)

    def test_partitioner_slot(self):
        conf, cls = mr.partitioner(Configuration(), first_letter)
        slot = cls()
        slot.setup(conf)

        assert isinstance(slot, PartitionerSlot)
        assert slot.partition("a", None, 4) == ord("a") % 4

    def test_partitioner_before_setup(self):
        with pytest.raises(BindingError):
            slot_class(Role.PARTITION, 0)().partition("a", None, 2)
