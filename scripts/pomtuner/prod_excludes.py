"""Disable the modules a product build does not need.

The task computes the modules required by the productized extensions and
artifacts, lists the others in an excludes file and comments them out of
their aggregator POMs. In checking mode the same happens on a scratch copy
of the POMs which is then compared with the real tree.
"""

import logging

from .config import ProdExcludesConfig
from .expressions import ActiveProfiles
from .gav_set import GavSet
from .pom_models import Ga
from .pom_transformer import PomTransformer
from .source_tree import MavenSourceTree, commenting_strategy
from .transformations import add_or_set_property
from .workspace import assert_poms_match, copy_poms, write_excludes_file

logger = logging.getLogger(__name__)

FIX_HINT = "pomtuner prod-excludes"


class ProdExcludesTask:
    """Runs the prod-excludes workflow described by a :class:`ProdExcludesConfig`."""

    def __init__(self, config: ProdExcludesConfig):
        self.config = config
        self.profiles = ActiveProfiles.of(*config.profiles)
        self.mismatches = []

    def execute(self) -> set:
        """Run the workflow.

        In checking mode the paths found out of sync are left in
        :attr:`mismatches` when the failure policy lets the run continue.

        Returns:
            The GAs of the excluded modules.

        Raises:
            PomStructureError: If a POM cannot be read or a productized module is missing.
            ConsistencyError: If the modules do not share the root version.
            CheckFailedError: In checking mode, if the real tree is out of sync.
        """
        config = self.config
        work_directory = config.work_directory
        if config.check:
            logger.info("Checking %s using the scratch directory %s", config.root_directory, work_directory)
            copy_poms(config.root_directory, work_directory, [config.excludes_file])

        root_pom = work_directory / "pom.xml"
        if config.properties:
            PomTransformer(root_pom, config.charset, config.simple_element_whitespace).transform(
                *(add_or_set_property(name, value) for name, value in config.properties)
            )

        tree = MavenSourceTree.of(root_pom, config.charset).relink_modules(
            config.charset, config.simple_element_whitespace, config.marker
        )
        required = tree.find_required_modules(self.initial_modules(tree), self.profiles)
        excludes = tree.complement(required)
        write_excludes_file(work_directory / config.excludes_file, excludes, config.charset)

        tree.assert_uniform_version()
        tree.unlink_modules(
            required,
            self.profiles,
            config.charset,
            config.simple_element_whitespace,
            commenting_strategy(config.marker),
        )
        logger.info("Kept %d modules, excluded %d", len(required), len(excludes))

        if config.check:
            self.mismatches = assert_poms_match(
                config.root_directory,
                work_directory,
                list(tree.modules_by_path) + [config.excludes_file],
                config.charset,
                config.on_check_failure,
                FIX_HINT,
            )
        return excludes

    def initial_modules(self, tree: MavenSourceTree) -> set:
        """The productized modules the closure starts from.

        Each extension contributes its runtime module and, when present in the
        tree, its ``-deployment`` module. Without any productized entry the
        whole tree is kept.
        """
        product = self.config.product
        result = set()
        for artifact_id in product.extensions:
            result.add(Ga(product.group_id, artifact_id))
            deployment = Ga(product.group_id, f"{artifact_id}-deployment")
            if deployment in tree.modules_by_ga:
                result.add(deployment)
        for entry in product.additional_productized_artifacts:
            group_id, sep, artifact_id = entry.partition(":")
            result.add(Ga(group_id, artifact_id) if sep else Ga(product.group_id, entry))
        if product.includes:
            includes = GavSet.builder().includes(list(product.includes)).build()
            result.update(ga for ga in tree.modules_by_ga if includes.contains_ga(ga))
        elif not result:
            logger.warning("No productized modules configured, keeping all modules")
            result.update(tree.modules_by_ga)
        result.discard(tree.root_module.ga)
        return result
