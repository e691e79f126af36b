"""
Watch-filters: which objects are relevant to which controller.

The filters are pure predicates of an object's body: of its labels and
annotations only. They are evaluated by the dispatcher on every watch-event
against the freshest known body, never inside of the reconcilers.

The injector's and the cleaner's filters are mutually exclusive for any single
state of an object: the inject-label is either present or absent. But the object
can change between the event and the reconciliation, so the reconcilers must be
correct regardless of which filter has let them in.
"""
from collections.abc import Callable, Collection, Mapping
from typing import Any

from bundleinject._cogs.configs import configuration
from bundleinject._cogs.structs import bodies

Predicate = Callable[[Mapping[str, Any]], bool]


def has_label(key: str) -> Predicate:
    def has_label_fn(body: Mapping[str, Any]) -> bool:
        return key in bodies.labels_of(body)
    return has_label_fn


def has_annotation(key: str) -> Predicate:
    def has_annotation_fn(body: Mapping[str, Any]) -> bool:
        return key in bodies.annotations_of(body)
    return has_annotation_fn


def not_(fn: Predicate) -> Predicate:
    def not_fn(body: Mapping[str, Any]) -> bool:
        return not fn(body)
    return not_fn


def all_(fns: Collection[Predicate]) -> Predicate:
    def all_fn(body: Mapping[str, Any]) -> bool:
        return all(fn(body) for fn in fns)
    return all_fn


def any_(fns: Collection[Predicate]) -> Predicate:
    def any_fn(body: Mapping[str, Any]) -> bool:
        return any(fn(body) for fn in fns)
    return any_fn


def injector_filter(settings: configuration.OperatorSettings) -> Predicate:
    """ Objects requesting the injection (regardless of the previous injections). """
    return has_label(settings.injection.inject_label)


def cleaner_filter(settings: configuration.OperatorSettings) -> Predicate:
    """ Objects injected previously but not requesting the injection anymore. """
    return all_([
        has_annotation(settings.injection.hash_annotation),
        not_(has_label(settings.injection.inject_label)),
    ])
