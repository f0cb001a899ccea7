import argparse
import sys

import batou
import pyaml
import yaml

from batou_nfs.engine import ConvergenceEngine
from batou_nfs.errors import ConfigurationError
from batou_nfs.nfs import NFSServerConfig, VariantResolver
from batou_nfs.platforms import detect_os_family


def load_config(path, os_family):
    """Read the YAML server configuration.

    Example::

        nfs_v4: true
        nfs_v4_export_root: /export
        nfs_v4_idmap_domain: example.com
        exports:
          - source: /srv/data
            clients: 10.0.0.0/24(rw)
          - source: /srv/media
            v4_export_name: music
    """
    data = {}
    if path:
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Can not read {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: expected a mapping")
    return NFSServerConfig.from_dict(data, os_family)


def converge(config, predict=False):
    nfs = VariantResolver(config).resolve()
    batou.output.section(
        f"NFS server on {nfs.platform.family} ({nfs.variant.value})"
    )
    return ConvergenceEngine(predict=predict).converge(nfs.graph)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Converge this host into an NFS server."
    )
    parser.add_argument(
        "-c",
        "--config",
        dest="config",
        help="YAML file with the server settings and exports.",
    )
    parser.add_argument(
        "--os-family",
        dest="os_family",
        help="OS family, detected from /etc/os-release if not given.",
    )
    parser.add_argument(
        "-p",
        "--predict",
        action="store_true",
        help="Only report what would change.",
    )
    args = parser.parse_args(argv)

    os_family = args.os_family or detect_os_family()
    try:
        config = load_config(args.config, os_family)
        report = converge(config, predict=args.predict)
    except ConfigurationError as e:
        e.report()
        return 2

    print(
        pyaml.dump(
            dict(
                resources=report.summary(),
                refreshed=[str(ref) for ref in report.refreshed],
                success=report.success,
            )
        )
    )
    sys.stdout.flush()
    if not report.success:
        batou.output.error(
            f"{len(report.failed)} failed, {len(report.skipped)} skipped"
        )
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
