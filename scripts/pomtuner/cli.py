"""CLI entry point and file output of the pomtuner commands.

Each subcommand wires the library modules together: the prod-excludes
workflow, tree-wide version updates, module relinking, POM sorting, module
closures, @sync property updates, BOM flattening and the inter-project
dependency conflict report.
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from .config import (
    DEFAULT_CHARSET,
    DEFAULT_GROUP_ID,
    OnFailure,
    PrimaryProject,
    ProdExcludesConfig,
    Product,
    load_product_config,
)
from .dependency_visitors import (
    ArtifactVersionCollector,
    ConflictPathCollector,
    ProjectMapper,
    analyze_conflicts,
)
from .errors import ConfigurationError, PomTunerError
from .expressions import ActiveProfiles
from .flatten_bom import DEFAULT_FLATTENED_POM_FILE, flatten_bom
from .gav_set import GavSet
from .pom_document import SimpleElementWhitespace
from .pom_models import Ga
from .pom_parser import parse_gas_of_bom, parse_pom
from .pom_transformer import PomTransformer
from .prod_excludes import ProdExcludesTask
from .resolver import LocalRepositoryResolver, PomModelCache, PrecomputedTreeCollector
from .source_tree import MavenSourceTree
from .sync_versions import sync_tree_versions
from .transformations import DEFAULT_MODULE_MARKER, sort_dependency_management, sort_modules
from .workspace import read_includes_file

logger = logging.getLogger(__name__)


def _profiles(values) -> tuple:
    """Flatten repeated and comma separated ``-P`` values."""
    return tuple(p.strip() for v in values or [] for p in v.split(",") if p.strip())


def _properties(values) -> tuple:
    result = []
    for value in values or []:
        name, sep, prop_value = value.partition("=")
        if not sep or not name:
            raise ConfigurationError(f"Expected -Dname=value, found '{value}'")
        result.append((name, prop_value))
    return tuple(result)


def _ga(value: str) -> Ga:
    try:
        return Ga.of(value)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


def _root_pom(root: Path) -> Path:
    return root / "pom.xml" if root.is_dir() else root


def _write(path: Path, lines: list, charset: str = DEFAULT_CHARSET):
    """Write report lines to a file, creating parent directories as needed.

    Args:
        path: Filesystem path to write to.
        lines: Report lines, joined with newlines.
        charset: Output encoding.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n", encoding=charset)
    print(f"  ✓ {path}")


def prod_excludes(args) -> int:
    if args.product is not None:
        product = load_product_config(args.product, args.charset)
    else:
        product = Product(group_id=args.group_id)
    if args.includes_file is not None:
        extra = read_includes_file(args.includes_file, product.group_id, args.charset)
        product = replace(product, includes=product.includes + tuple(extra))
    config = ProdExcludesConfig(
        root_directory=args.root.resolve(),
        product=product,
        profiles=_profiles(args.profiles),
        properties=_properties(args.defines),
        charset=args.charset,
        simple_element_whitespace=SimpleElementWhitespace[args.simple_element_whitespace],
        check=args.check,
        on_check_failure=OnFailure[args.on_check_failure],
    )
    task = ProdExcludesTask(config)
    excludes = task.execute()
    if config.check and task.mismatches:
        print(f"\n⚠️  {len(task.mismatches)} file(s) of {config.root_directory} are not in sync")
    elif config.check:
        print(f"\n✅ {config.root_directory} is in sync ({len(excludes)} modules excluded)")
    else:
        print(f"\n✅ Excluded {len(excludes)} modules, listed in {config.root_directory / config.excludes_file}")
    return 0


def set_versions(args) -> int:
    tree = MavenSourceTree.of(_root_pom(args.root), args.charset)
    tree.set_versions(
        args.version,
        ActiveProfiles.of(*_profiles(args.profiles)),
        SimpleElementWhitespace[args.simple_element_whitespace],
    )
    print(f"\n✅ Set version {args.version} in {len(tree.modules_by_path)} modules")
    return 0


def relink(args) -> int:
    tree = MavenSourceTree.of(_root_pom(args.root), args.charset)
    relinked = tree.relink_modules(args.charset, SimpleElementWhitespace[args.simple_element_whitespace], args.marker)
    print(f"\n✅ {len(relinked.modules_by_path)} modules linked")
    return 0


def sort(args) -> int:
    profile_ids = set(_profiles(args.profiles)) or None
    if args.command == "sort-modules":
        transformations = [sort_modules(profile_ids)]
    else:
        transformations = [sort_dependency_management(p) for p in sorted(profile_ids or [None])]
    for pom in args.poms:
        changed = PomTransformer(pom, args.charset, SimpleElementWhitespace[args.simple_element_whitespace]).transform(
            *transformations
        )
        print(f"  {'✓' if changed else '⏭'} {pom}")
    return 0


def sync_versions(args) -> int:
    transformations = ()
    if args.product is not None:
        transformations = load_product_config(args.product, args.charset).version_transformations
    changed = sync_tree_versions(
        _root_pom(args.root),
        PomModelCache(LocalRepositoryResolver(args.repository), args.charset),
        ActiveProfiles.of(*_profiles(args.profiles)),
        dict(_properties(args.defines)),
        dict(transformations),
        args.charset,
        SimpleElementWhitespace[args.simple_element_whitespace],
    )
    print(f"\n✅ {_root_pom(args.root)} {'updated' if changed else 'already in sync'}")
    return 0


def flatten(args) -> int:
    path, entries, changed = flatten_bom(
        args.bom,
        PomModelCache(LocalRepositoryResolver(args.repository), args.charset),
        root_pom=_root_pom(args.root) if args.root is not None else None,
        output=args.output,
        excludes=GavSet.builder().includes(args.excludes).build() if args.excludes else None,
        origin_excludes=GavSet.builder().includes(args.origin_excludes).build() if args.origin_excludes else None,
        profiles=ActiveProfiles.of(*_profiles(args.profiles)),
        user_properties=dict(_properties(args.defines)),
        verbose=args.verbose_bom,
        charset=args.charset,
    )
    print(f"  {'✓' if changed else '⏭'} {path} ({len(entries)} managed dependencies)")
    return 0


def required_modules(args) -> int:
    tree = MavenSourceTree.of(_root_pom(args.root), args.charset)
    seed = {_ga(m) for m in args.modules}
    for ga in sorted(tree.find_required_modules(seed, ActiveProfiles.of(*_profiles(args.profiles)))):
        print(ga)
    return 0


def conflict_paths(args) -> int:
    bom = parse_pom(args.bom, charset=args.charset)
    bom_entries = parse_gas_of_bom(args.bom, args.charset)
    collector = PrecomputedTreeCollector.from_directory(args.trees, args.charset)

    own_gas = set()
    if args.root is not None:
        own_gas = set(MavenSourceTree.of(_root_pom(args.root), args.charset).modules_by_ga)
    primary = {p.project_id: p.to_gav_set() for p in map(PrimaryProject.parse, args.primary or [])}
    transitive = {p.project_id: p.to_gav_set() for p in map(PrimaryProject.parse, args.transitive or [])}

    camel_versions = {}
    if args.camel_trees is not None:
        versions = ArtifactVersionCollector()
        for tree in PrecomputedTreeCollector.from_directory(args.camel_trees, args.charset).trees.values():
            versions.visit(tree)
        camel_versions = versions.artifact_versions

    visitor = ConflictPathCollector(
        primary,
        ProjectMapper(transitive),
        own_gas,
        empty_artifact=_ga(args.empty_artifact) if args.empty_artifact else None,
        boms={bom.gav: {ga: version for ga, version in bom_entries}},
        camel_versions=camel_versions,
    )
    entry_points = GavSet.builder().includes(args.entry_includes).excludes(args.entry_excludes).build()
    count = analyze_conflicts(bom_entries, entry_points, collector, visitor)
    print(f"Analyzed {count} entry points of {bom.gav}")

    out = args.output_dir
    _write(out / "conflict-paths-short.yaml", visitor.render_short(), args.charset)
    _write(out / "conflict-paths-verbose.yaml", visitor.render_verbose(), args.charset)
    _write(out / "artifact-versions.yaml", visitor.render_versions(), args.charset)
    _write(out / "dependency-paths.txt", visitor.render_all_dependency_paths(), args.charset)
    return 0


def _add_common(parser, profiles: bool = True):
    parser.add_argument("--charset", default=DEFAULT_CHARSET, help="Encoding of POM files (default: utf-8)")
    parser.add_argument(
        "--simple-element-whitespace",
        choices=[w.name for w in SimpleElementWhitespace],
        default=SimpleElementWhitespace.EMPTY.name,
        help="How to render empty elements created by edits (default: EMPTY)",
    )
    if profiles:
        parser.add_argument(
            "-P", "--profiles", action="append",
            help="Profiles to activate, comma separated; prefix with ! to disable",
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pomtuner", description="Edit and analyze Maven multi-module source trees")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug messages")
    commands = parser.add_subparsers(dest="command", required=True)

    p = commands.add_parser("prod-excludes", help="Disable modules not required by the product")
    p.add_argument("root", type=Path, nargs="?", default=Path("."), help="Source tree root (default: .)")
    p.add_argument("--product", type=Path, help="Product JSON file")
    p.add_argument("--group-id", default=DEFAULT_GROUP_ID, help="Product groupId when no product file is given")
    p.add_argument("--includes-file", type=Path, help="File with further GAV patterns to keep, one per line")
    p.add_argument("--check", action="store_true", help="Only check that the tree is in sync")
    p.add_argument("--on-check-failure", choices=[f.name for f in OnFailure], default=OnFailure.FAIL.name)
    p.add_argument("-D", dest="defines", action="append", help="Set a root POM property: -Dname=value")
    _add_common(p)
    p.set_defaults(func=prod_excludes)

    p = commands.add_parser("set-versions", help="Set the version of all modules")
    p.add_argument("version")
    p.add_argument("root", type=Path, nargs="?", default=Path("."))
    _add_common(p)
    p.set_defaults(func=set_versions)

    p = commands.add_parser("relink", help="Restore modules commented out by prod-excludes")
    p.add_argument("root", type=Path, nargs="?", default=Path("."))
    p.add_argument("--marker", default=DEFAULT_MODULE_MARKER)
    _add_common(p, profiles=False)
    p.set_defaults(func=relink)

    for name, help_text in (
        ("sort-modules", "Sort <module> entries"),
        ("sort-dependency-management", "Sort managed dependencies after an a..z comment"),
    ):
        p = commands.add_parser(name, help=help_text)
        p.add_argument("poms", type=Path, nargs="*", default=[Path("pom.xml")])
        _add_common(p)
        p.set_defaults(func=sort)

    p = commands.add_parser("sync-versions", help="Update properties tagged with @sync comments")
    p.add_argument("root", type=Path, nargs="?", default=Path("."), help="Source tree root (default: .)")
    p.add_argument("--repository", type=Path, help="Local Maven repository (default: ~/.m2/repository)")
    p.add_argument("--product", type=Path, help="Product JSON file with versionTransformations")
    p.add_argument("-D", dest="defines", action="append", help="Override a property: -Dname=value")
    _add_common(p)
    p.set_defaults(func=sync_versions)

    p = commands.add_parser("flatten-bom", help="Write a BOM with its imports inlined and versions resolved")
    p.add_argument("bom", type=Path, nargs="?", default=Path("pom.xml"), help="The BOM pom.xml (default: pom.xml)")
    p.add_argument("--root", type=Path, help="Root of the source tree holding the BOM")
    p.add_argument("--repository", type=Path, help="Local Maven repository (default: ~/.m2/repository)")
    p.add_argument("--output", type=Path, help=f"Output file (default: {DEFAULT_FLATTENED_POM_FILE} next to the BOM)")
    p.add_argument("--excludes", help="GAV patterns of entries to leave out")
    p.add_argument("--origin-excludes", help="GAV patterns of POMs whose entries are left out")
    p.add_argument("--verbose-bom", action="store_true", help="Note the origin of each entry")
    p.add_argument("-D", dest="defines", action="append", help="Override a property: -Dname=value")
    _add_common(p)
    p.set_defaults(func=flatten)

    p = commands.add_parser("required-modules", help="Print the modules required by the given ones")
    p.add_argument("modules", nargs="+", help="groupId:artifactId of the seed modules")
    p.add_argument("--root", type=Path, default=Path("."))
    _add_common(p)
    p.set_defaults(func=required_modules)

    p = commands.add_parser("conflict-paths", help="Report artifacts reachable through several projects")
    p.add_argument("--bom", type=Path, required=True, help="BOM pom.xml whose entries are analyzed")
    p.add_argument("--trees", type=Path, required=True, help="Directory of resolved dependency tree JSON files")
    p.add_argument("--root", type=Path, help="Source tree whose modules end the reported paths")
    p.add_argument("--entry-includes", help="GAV patterns of the BOM entries to analyze")
    p.add_argument("--entry-excludes", help="GAV patterns of the BOM entries to skip")
    p.add_argument("--primary", action="append", help="Primary project: id=includes[/excludes]")
    p.add_argument("--transitive", action="append", help="Transitive project: id=includes[/excludes]")
    p.add_argument("--camel-trees", type=Path, help="Dependency trees of Camel itself")
    p.add_argument("--empty-artifact", help="groupId:artifactId of a synthetic root to hide")
    p.add_argument("--output-dir", type=Path, default=Path("target/conflict-paths"))
    _add_common(p, profiles=False)
    p.set_defaults(func=conflict_paths)
    return parser


def main(argv=None) -> int:
    """CLI entry point. Parses arguments and delegates to the subcommand."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except PomTunerError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
