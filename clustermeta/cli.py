#!/usr/bin/env python3
"""
Command line interface for inspecting and administering a cluster.

Usage:
    clustermeta --zookeeper zk1:2181/kafka brokers
    clustermeta topics
    clustermeta partitions --under-replicated
    clustermeta create-topic events --partitions 12 --replication-factor 3 --config retention.ms=86400000
    clustermeta elect-leaders events/0 events/1
    clustermeta critical 2 --replicas 1
"""

import argparse
import sys
from typing import Dict, List, Optional

from clustermeta.cluster import Cluster
from clustermeta.errors import ClusterMetaError, ValidationError
from clustermeta.utils.config import Config, get_config
from clustermeta.utils.logging import bind_context, clear_context, configure_logging, get_logger

logger = get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="clustermeta",
        description="Inspect and administer a Kafka cluster through ZooKeeper",
    )

    parser.add_argument(
        "--zookeeper",
        type=str,
        help="ZooKeeper connect string (default: coordination.hosts from config)",
    )

    parser.add_argument(
        "--config",
        type=str,
        help="YAML configuration file",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: logging.level from config)",
    )

    parser.add_argument(
        "--log-format",
        type=str,
        choices=["json", "console"],
        help="Log output format (default: logging.format from config)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    brokers = commands.add_parser("brokers", help="List live brokers")
    brokers.set_defaults(handler=cmd_brokers)

    topics = commands.add_parser("topics", help="List topics")
    topics.set_defaults(handler=cmd_topics)

    partitions = commands.add_parser("partitions", help="List partitions with leader and ISR")
    partitions.add_argument("--topic", type=str, help="Only show partitions of this topic")
    partitions.add_argument(
        "--under-replicated",
        action="store_true",
        help="Only show under-replicated partitions; exit 1 if there are any",
    )
    partitions.set_defaults(handler=cmd_partitions)

    groups = commands.add_parser("consumergroups", help="List consumer groups")
    groups.set_defaults(handler=cmd_consumergroups)

    create = commands.add_parser("create-topic", help="Create a topic")
    create.add_argument("name", type=str)
    create.add_argument("--partitions", type=int, required=True)
    create.add_argument("--replication-factor", type=int, required=True)
    create.add_argument(
        "--config",
        dest="topic_config",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Topic configuration override (repeatable)",
    )
    create.set_defaults(handler=cmd_create_topic)

    elect = commands.add_parser("elect-leaders", help="Trigger a preferred leader election")
    elect.add_argument(
        "partitions",
        nargs="*",
        metavar="TOPIC/PARTITION",
        help="Partitions to elect leaders for (default: all)",
    )
    elect.set_defaults(handler=cmd_elect_leaders)

    critical = commands.add_parser("critical", help="Check whether stopping a broker is unsafe")
    critical.add_argument("broker_id", type=int)
    critical.add_argument("--replicas", type=int, default=1)
    critical.set_defaults(handler=cmd_critical)

    return parser.parse_args(argv)


def parse_key_values(pairs: List[str]) -> Dict[str, str]:
    """Parse KEY=VALUE strings into a dict."""
    result = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValidationError(f"expected KEY=VALUE, got {pair!r}")
        result[key] = value
    return result


def cmd_brokers(cluster: Cluster, args: argparse.Namespace) -> int:
    for broker in cluster.brokers().values():
        print(f"{broker.id}\t{broker.addr}")
    return 0


def cmd_topics(cluster: Cluster, args: argparse.Namespace) -> int:
    for topic in cluster.topics().values():
        print(f"{topic.name}\tpartitions={len(topic.partitions())}\treplication_factor={topic.replication_factor()}")
    return 0


def cmd_partitions(cluster: Cluster, args: argparse.Namespace) -> int:
    if args.topic:
        partitions = cluster.topic(args.topic).partitions()
    else:
        partitions = cluster.partitions()

    found = False
    for partition in partitions:
        under_replicated = partition.under_replicated()
        if args.under_replicated and not under_replicated:
            continue

        found = found or under_replicated
        print(
            f"{partition.topic.name}/{partition.index}\t"
            f"leader={partition.leader()}\t"
            f"replicas={','.join(str(r) for r in partition.replicas)}\t"
            f"isr={','.join(str(r) for r in partition.isr())}"
        )

    return 1 if args.under_replicated and found else 0


def cmd_consumergroups(cluster: Cluster, args: argparse.Namespace) -> int:
    for group in cluster.consumergroups().values():
        print(f"{group.name}\tinstances={len(group.instances())}")
    return 0


def cmd_create_topic(cluster: Cluster, args: argparse.Namespace) -> int:
    topic = cluster.create_topic(
        args.name,
        partitions=args.partitions,
        replication_factor=args.replication_factor,
        config=parse_key_values(args.topic_config),
    )
    print(f"Created topic {topic.name}")
    return 0


def cmd_elect_leaders(cluster: Cluster, args: argparse.Namespace) -> int:
    partitions = None
    if args.partitions:
        partitions = []
        for spec in args.partitions:
            name, sep, index = spec.rpartition("/")
            if not sep or not name or not index.isdigit():
                raise ValidationError(f"expected TOPIC/PARTITION, got {spec!r}")
            partitions.append(cluster.topic(name).partition(int(index)))

    cluster.preferred_leader_election(partitions=partitions)
    print("Preferred leader election triggered")
    return 0


def cmd_critical(cluster: Cluster, args: argparse.Namespace) -> int:
    broker = cluster.broker(args.broker_id)
    if broker.critical(replicas=args.replicas):
        print(f"Broker {broker.id} is critical")
        return 1
    print(f"Broker {broker.id} is not critical")
    return 0


def main(argv: Optional[List[str]] = None, **cluster_options) -> int:
    """Main entry point; returns the process exit status."""
    args = parse_args(argv)

    config = Config(args.config) if args.config else get_config()
    if args.zookeeper:
        config.set("coordination.hosts", args.zookeeper)

    configure_logging(
        log_level=args.log_level or config.get("logging.level", "INFO"),
        log_format=args.log_format or config.get("logging.format", "console"),
    )

    bind_context(zookeeper=config.get("coordination.hosts"), command=args.command)
    try:
        with Cluster.from_config(config, **cluster_options) as cluster:
            return args.handler(cluster, args)
    except (ClusterMetaError, KeyError) as e:
        logger.error("Command failed", error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        clear_context()


if __name__ == "__main__":
    sys.exit(main())
