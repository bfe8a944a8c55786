"""Package graph builder.

Walks a parsed setup description and the file system and produces the
directory, component and feature graph, plus shortcuts, custom actions and
registry components, rendered as WiX fragments.

A build runs in fixed passes:

1. Exclusion collection (every ``exclude`` item, anywhere in the tree)
2. Feature id assignment keyed by positional path (``"0"``, ``"0/1"``...)
3. Item processing, features first, then top-level items
4. ``ADD_TO_PATH`` environment component
5. Per-directory permission components
6. Rendering

The positional feature map built in pass 2 is read-only afterwards, so the
ids used while attaching components and those used when emitting
``Feature`` elements always agree.

Example:
    ```python
    from pathlib import Path

    from msigen.generator import PackageGraphBuilder

    output = PackageGraphBuilder(setup, variables, Path("project")).build()
    print(output.directory_xml)
    ```
"""

from __future__ import annotations

import os
from pathlib import Path

from msigen.exceptions import ConfigError
from msigen.generator import render
from msigen.generator.model import (
    CUSTOM_ACTION_TIMINGS,
    ROOT_KEYS,
    Component,
    CustomAction,
    Directory,
    Environment,
    FileEntry,
    PermissionMarker,
    ServiceEntry,
    ShortcutComponent,
    ShortcutEntry,
)
from msigen.ids import (
    IdAllocator,
    base_component_id,
    generate_guid,
    generate_short_name,
)
from msigen.ir import (
    Execute,
    Exclude,
    Feature,
    Files,
    Item,
    Registry,
    Service,
    SetEnv,
    Setup,
    Shortcut,
)
from msigen.logging import get_global_logger
from msigen.registry.processor import RegistryComponent, RegistryProcessor
from msigen.results import GeneratedOutput
from msigen.variables import Variables

_SHORTCUT_DESTINATIONS = ("DESKTOP", "STARTMENU")

_SERVICE_START = {
    "auto": "auto",
    "manual": "demand",
    "demand": "demand",
    "disabled": "disabled",
}


def parse_target(target: str) -> tuple[str, str]:
    """Split a target spec into a root key and a backslash-separated sub-path.

    Args:
        target: ``[ROOT]sub/path``, a bare root name such as ``appdatadir``,
            or a plain relative path (anchored under INSTALLDIR).

    Returns:
        Tuple (root_key, sub_path).

    Raises:
        ConfigError: On an unterminated bracket or an unknown bracketed root.

    Example:
        ```python
        parse_target("[INSTALLDIR]bin/x64")  # ("INSTALLDIR", "bin\\x64")
        parse_target("appdatadir")           # ("APPDATADIR", "")
        parse_target("docs")                 # ("INSTALLDIR", "docs")
        ```
    """
    if target.startswith("["):
        end = target.find("]")
        if end < 0:
            raise ConfigError(f"invalid target {target!r}: missing ']'")
        root_key = target[1:end]
        if root_key not in ROOT_KEYS:
            raise ConfigError(
                f"invalid target {target!r}: unknown install root {root_key!r}, "
                f"must be one of {', '.join(ROOT_KEYS)}"
            )
        sub_path = target[end + 1 :].replace("/", "\\").lstrip("\\")
        return root_key, sub_path

    if target.upper() in ROOT_KEYS:
        return target.upper(), ""

    return "INSTALLDIR", target.replace("/", "\\")


def _normalize(path: str) -> str:
    return os.path.normpath(path.replace("\\", "/")).lower()


def _feature_path(parent: str, index: int) -> str:
    return f"{parent}/{index}" if parent else str(index)


class PackageGraphBuilder:
    """Builds the package graph for one setup description.

    A builder is single-use: ``build()`` consumes its fresh id counters.

    Args:
        setup: Parsed setup description.
        variables: Resolved variables (install root names, feature flags).
        work_dir: Directory relative ``files`` sources are resolved against.
    """

    def __init__(self, setup: Setup, variables: Variables, work_dir: Path | str):
        self.setup = setup
        self.variables = variables
        self.work_dir = str(work_dir)

        self.ids = IdAllocator()
        self.trees: dict[str, Directory] = {}
        self.excluded: set[str] = set()
        self.feature_ids: dict[str, str] = {}
        self.feature_components: dict[str, list[str]] = {}
        self.registry_components: list[RegistryComponent] = []
        self.desktop_shortcuts: list[ShortcutComponent] = []
        self.start_menu_shortcuts: list[ShortcutComponent] = []
        self.custom_actions: list[CustomAction] = []

        self._registry = RegistryProcessor(work_dir)
        self._target_seen: dict[tuple[str, str], int] = {}
        self._built = False

    def build(self) -> GeneratedOutput:
        """Run every pass and render the fragments.

        Raises:
            ConfigError: On a malformed target, shortcut destination or
                custom-action timing, or a malformed .reg file.
            PackagingError: If a referenced .reg file is missing.
            RuntimeError: If called twice on the same builder.
        """
        if self._built:
            raise RuntimeError("PackageGraphBuilder.build() may only run once")
        self._built = True

        logger = get_global_logger()

        self._collect_excludes(self.setup.items)
        for feature in self.setup.features:
            self._collect_feature_excludes(feature)
        logger.debug("GRAPH", f"{len(self.excluded)} exclusion key(s)")

        for index, feature in enumerate(self.setup.features):
            self._assign_feature_ids(feature, "", index)

        for index, feature in enumerate(self.setup.features):
            self._process_feature(feature, "", index)
        for item in self.setup.items:
            self._process_item(item, "")

        if self.variables.get_bool("ADD_TO_PATH") and self.setup.features:
            self._add_path_environment(self.feature_ids["0"])

        if not self.variables.get_bool("DISABLE_FILE_PERMISSIONS"):
            self._assign_permissions()

        output = self._render()
        logger.verbose(
            "GRAPH",
            f"{output.directory_count} directories, "
            f"{output.component_count} components",
        )
        return output

    # Pass 1: exclusions

    def _collect_excludes(self, items: list[Item]) -> None:
        for item in items:
            if isinstance(item, Exclude):
                self.excluded.add(_normalize(item.folder))
                if not os.path.isabs(item.folder):
                    self.excluded.add(
                        _normalize(os.path.join(self.work_dir, item.folder.replace("\\", "/")))
                    )

    def _collect_feature_excludes(self, feature: Feature) -> None:
        self._collect_excludes(feature.items)
        for sub_feature in feature.sub_features:
            self._collect_feature_excludes(sub_feature)

    def _matches_exclusion(self, path: str) -> bool:
        key = _normalize(path)
        while True:
            if key in self.excluded:
                return True
            parent = os.path.dirname(key)
            if not parent or parent == key:
                return False
            key = parent

    def _is_excluded(self, abs_path: str, abs_base: str) -> bool:
        """Check the path and its ancestors in absolute and relative forms."""
        if not self.excluded:
            return False
        if self._matches_exclusion(abs_path):
            return True
        for base in (abs_base, self.work_dir):
            relative = os.path.relpath(abs_path, base)
            if relative != "." and self._matches_exclusion(relative):
                return True
        return False

    # Pass 2: feature ids

    def _assign_feature_ids(self, feature: Feature, parent: str, index: int) -> None:
        path = _feature_path(parent, index)
        self.feature_ids[path] = self.ids.feature()
        for sub_index, sub_feature in enumerate(feature.sub_features):
            self._assign_feature_ids(sub_feature, path, sub_index)

    # Pass 3: items

    def _process_feature(self, feature: Feature, parent: str, index: int) -> None:
        path = _feature_path(parent, index)
        feature_id = self.feature_ids[path]
        get_global_logger().debug("GRAPH", f"Feature {feature_id} ({feature.name})")
        for item in feature.items:
            self._process_item(item, feature_id)
        for sub_index, sub_feature in enumerate(feature.sub_features):
            self._process_feature(sub_feature, path, sub_index)

    def _process_item(self, item: Item, feature_id: str) -> None:
        if isinstance(item, Files):
            self._process_files(item, feature_id)
        elif isinstance(item, SetEnv):
            self._process_set_env(item, feature_id)
        elif isinstance(item, Service):
            self._process_service(item, feature_id)
        elif isinstance(item, Shortcut):
            self._process_shortcut(item, feature_id)
        elif isinstance(item, Registry):
            self._process_registry(item, feature_id)
        elif isinstance(item, Execute):
            self._process_execute(item)
        elif isinstance(item, Exclude):
            pass  # collected in pass 1
        else:
            raise TypeError(f"unsupported item type: {type(item).__name__}")

    def _attach(self, directory: Directory, component: Component, feature_id: str) -> None:
        directory.components.append(component)
        if feature_id:
            self.feature_components.setdefault(feature_id, []).append(component.id)
            node: Directory | None = directory
            while node is not None:
                node.feature_ids.add(feature_id)
                node = node.parent

    def _get_or_create_directory(
        self, root_key: str, sub_path: str, do_not_overwrite: bool = False
    ) -> Directory:
        root = self.trees.get(root_key)
        if root is None:
            root = Directory(
                id=self.ids.directory(),
                name=self.variables.get(root_key, ""),
                root_key=root_key,
            )
            self.trees[root_key] = root

        current = root
        for part in sub_path.split("\\"):
            if part:
                current = self._child_directory(current, part, do_not_overwrite)
        return current

    def _child_directory(
        self, parent: Directory, name: str, do_not_overwrite: bool
    ) -> Directory:
        key = name.lower()
        child = parent.children.get(key)
        if child is None:
            child = Directory(
                id=self.ids.directory(),
                name=name,
                parent=parent,
                do_not_overwrite=do_not_overwrite,
            )
            parent.children[key] = child
            get_global_logger().debug(
                "GRAPH", f"Created directory {child.id} ({child.full_path()})"
            )
        return child

    def _process_files(self, item: Files, feature_id: str) -> None:
        root_key, sub_path = parse_target(item.target)
        directory = self._get_or_create_directory(
            root_key, sub_path, item.do_not_overwrite
        )

        # Emitted Source attributes keep the path as written, so the compiler
        # resolves them relative to the fragment's location.
        source = item.source
        abs_source = (
            source if os.path.isabs(source) else os.path.join(self.work_dir, source)
        )

        if os.path.isdir(abs_source):
            self._add_directory_contents(
                directory, source, abs_source, abs_source, feature_id, item.do_not_overwrite
            )
        elif os.path.isfile(abs_source):
            if self._is_excluded(abs_source, abs_source):
                get_global_logger().debug("GRAPH", f"Excluded: {source}")
                return
            self._add_file(
                directory,
                source,
                os.path.basename(abs_source),
                feature_id,
                item.do_not_overwrite,
            )
        else:
            get_global_logger().debug("GRAPH", f"Source not found, skipping: {source}")

    def _add_directory_contents(
        self,
        directory: Directory,
        source: str,
        abs_base: str,
        abs_current: str,
        feature_id: str,
        do_not_overwrite: bool,
    ) -> None:
        logger = get_global_logger()
        if self._is_excluded(abs_current, abs_base):
            logger.debug("GRAPH", f"Excluded: {abs_current}")
            return

        try:
            with os.scandir(abs_current) as it:
                entries = sorted(it, key=lambda entry: entry.name)
        except OSError as err:
            logger.verbose("GRAPH", f"Cannot read {abs_current}, skipping: {err}")
            return

        relative = os.path.relpath(abs_current, abs_base)
        for entry in entries:
            if self._is_excluded(entry.path, abs_base):
                logger.debug("GRAPH", f"Excluded: {entry.path}")
                continue

            if entry.is_dir():
                child = self._child_directory(directory, entry.name, do_not_overwrite)
                self._add_directory_contents(
                    child, source, abs_base, entry.path, feature_id, do_not_overwrite
                )
            else:
                if relative == ".":
                    emitted = os.path.join(source, entry.name)
                else:
                    emitted = os.path.join(source, relative, entry.name)
                self._add_file(
                    directory, emitted, entry.name, feature_id, do_not_overwrite
                )

    def _add_file(
        self,
        directory: Directory,
        source_path: str,
        file_name: str,
        feature_id: str,
        do_not_overwrite: bool,
    ) -> None:
        # Keyed by source path so that features overriding the same target
        # file with different sources still get distinct components.
        component_id = self.ids.component(source_path)

        target_key = (directory.id, file_name.lower())
        occurrence = self._target_seen.get(target_key, 0) + 1
        self._target_seen[target_key] = occurrence

        short_name = ""
        if occurrence > 1:
            short_name = generate_short_name(file_name, occurrence)
            get_global_logger().verbose(
                "GRAPH",
                f"Duplicate target {directory.full_path()}\\{file_name}, "
                f"using short name {short_name}",
            )

        entry = FileEntry(
            id=self.ids.file(),
            name=file_name,
            source_path=source_path,
            short_name=short_name,
        )
        # A source placed twice gets a suffixed id; its GUID follows the id.
        guid_source = source_path
        if component_id != base_component_id(source_path):
            guid_source = component_id
        component = Component(
            id=component_id,
            guid=generate_guid(guid_source),
            payload=entry,
            never_overwrite=do_not_overwrite,
        )
        self._attach(directory, component, feature_id)

    def _process_set_env(self, item: SetEnv, feature_id: str) -> None:
        directory = self._get_or_create_directory("INSTALLDIR", "")
        component_id = self.ids.component(f"env_{item.name}")
        env = Environment(id=self.ids.environment(), name=item.name, value=item.value)
        self._attach(
            directory,
            Component(id=component_id, guid=generate_guid(component_id), payload=env),
            feature_id,
        )

    def _process_service(self, item: Service, feature_id: str) -> None:
        directory = self._get_or_create_directory("INSTALLDIR", "")
        component_id = self.ids.component(f"svc_{item.service_name}")
        service = ServiceEntry(
            id=self.ids.service(),
            name=item.service_name,
            file_name=item.file_name,
            display_name=item.display_name,
            description=item.description,
            start=_SERVICE_START.get(item.start.lower(), "auto"),
            service_type=item.service_type or "ownProcess",
            error_control=item.error_control or "normal",
        )
        self._attach(
            directory,
            Component(id=component_id, guid=generate_guid(component_id), payload=service),
            feature_id,
        )

    def _process_shortcut(self, item: Shortcut, feature_id: str) -> None:
        destination = item.target.upper()
        if destination not in _SHORTCUT_DESTINATIONS:
            raise ConfigError(
                f"invalid shortcut target {item.target!r} for shortcut "
                f"{item.name!r}: must be DESKTOP or STARTMENU"
            )

        working_dir = "INSTALLDIR"
        if item.file.startswith("["):
            end = item.file.find("]")
            if end > 0:
                working_dir = item.file[1:end]

        shortcut = ShortcutEntry(
            id=self.ids.shortcut(),
            name=item.name,
            target=item.file,
            working_dir=working_dir,
            description=item.description,
            icon=item.icon,
        )
        component_id = self.ids.component(f"shortcut_{item.name}")
        component = ShortcutComponent(
            id=component_id, guid=generate_guid(component_id), shortcut=shortcut
        )

        if destination == "DESKTOP":
            self.desktop_shortcuts.append(component)
        else:
            self.start_menu_shortcuts.append(component)
        if feature_id:
            self.feature_components.setdefault(feature_id, []).append(component_id)

    def _process_registry(self, item: Registry, feature_id: str) -> None:
        components = self._registry.process(item)
        self.registry_components.extend(components)
        if feature_id:
            self.feature_components.setdefault(feature_id, []).extend(
                component.id for component in components
            )

    def _process_execute(self, item: Execute) -> None:
        if item.when not in CUSTOM_ACTION_TIMINGS:
            raise ConfigError(
                f"invalid execute when value {item.when!r}: must be one of "
                f"{', '.join(CUSTOM_ACTION_TIMINGS)}"
            )
        self.custom_actions.append(
            CustomAction(
                id=self.ids.custom_action(),
                command=item.cmd,
                directory=item.directory or "INSTALLDIR",
                when=item.when,
            )
        )

    # Pass 4 and 5

    def _add_path_environment(self, feature_id: str) -> None:
        directory = self._get_or_create_directory("INSTALLDIR", "")
        component_id = self.ids.component("add_to_path")
        env = Environment(id=self.ids.environment(), name="PATH", value="[INSTALLDIR]")
        self._attach(
            directory,
            Component(id=component_id, guid=generate_guid(component_id), payload=env),
            feature_id,
        )

    def _assign_permissions(self) -> None:
        restricted = self.variables.get_bool("RESTRICT_FILE_PERMISSIONS")
        for root_key in ROOT_KEYS:
            root = self.trees.get(root_key)
            if root is not None:
                self._assign_permission(root, restricted)

    def _assign_permission(self, directory: Directory, restricted: bool) -> None:
        if directory.is_named:
            component_id = self.ids.component(f"perm_{directory.xml_id}")
            directory.permission = Component(
                id=component_id,
                guid=generate_guid(component_id),
                payload=PermissionMarker(restricted=restricted),
            )
            for feature_id in sorted(directory.feature_ids):
                self.feature_components.setdefault(feature_id, []).append(component_id)
        for child in directory.sorted_children():
            self._assign_permission(child, restricted)

    # Pass 6

    def _render(self) -> GeneratedOutput:
        def tree_xml(root_key: str) -> str:
            root = self.trees.get(root_key)
            return render.render_directory_tree(root) if root is not None else ""

        registry_xml = ""
        if self.registry_components:
            registry_xml = self._registry.generate_xml(
                self.registry_components,
                self.variables.get_bool("SET_REGISTRY_PERMISSIONS"),
            )

        product_name = self.variables.product_name
        return GeneratedOutput(
            directory_xml=tree_xml("INSTALLDIR"),
            app_data_dir_xml=tree_xml("APPDATADIR"),
            roaming_app_data_dir_xml=tree_xml("ROAMINGAPPDATADIR"),
            local_app_data_dir_xml=tree_xml("LOCALAPPDATADIR"),
            common_files_dir_xml=tree_xml("COMMONFILESDIR"),
            windows_dir_xml=tree_xml("WINDOWSDIR"),
            system_dir_xml=tree_xml("SYSTEMDIR"),
            feature_xml=render.render_features(
                self.setup.features, self.feature_ids, self.feature_components
            ),
            registry_xml=registry_xml,
            desktop_xml=render.render_shortcuts(self.desktop_shortcuts, product_name),
            start_menu_xml=render.render_shortcuts(self.start_menu_shortcuts, product_name),
            custom_actions_xml=render.render_custom_actions(self.custom_actions),
            install_execute_sequence=render.render_install_execute_sequence(
                self.custom_actions
            ),
            directory_count=sum(_count_directories(root) for root in self.trees.values()),
            component_count=self.ids.component_count + len(self.registry_components),
        )


def _count_directories(directory: Directory) -> int:
    return 1 + sum(_count_directories(child) for child in directory.children.values())
