"""
Text rendering of broker descriptors
"""

from datetime import datetime
from typing import List, Optional

from .client import BrokerInfo, Message, Metadata, PartitionEventTimestamps, PartitionMetadata


def broker_string(broker: BrokerInfo) -> str:
    return f"{broker.id} ({broker.addr})"


def time_to_string(value: Optional[datetime]) -> str:
    """Format a timestamp, "never" when it was not set"""
    if value is None:
        return "never"
    return str(value)


def timestamps_to_string(timestamps: PartitionEventTimestamps) -> str:
    return (
        f"first: {time_to_string(timestamps.first_time)}, "
        f"latest: {time_to_string(timestamps.latest_time)}"
    )


def format_message(message: Message) -> str:
    """Line printed for each message of a plain subscription"""
    value = message.value.decode("utf-8", errors="replace")
    return f"Received message with data: {value}, offset: {message.offset}"


def metadata_lines(metadata: Metadata) -> List[str]:
    """Render cluster metadata as indented lines"""
    lines = ["addresses:"]
    lines.extend(f" {addr}" for addr in metadata.addresses)

    lines.append("brokers:")
    lines.extend(f" {broker_string(broker)}" for broker in metadata.brokers)

    lines.append("last updated:")
    lines.append(f" {time_to_string(metadata.last_updated)}")

    lines.append("streams:")
    for stream in metadata.streams:
        lines.append(f" {stream.name} (subject: {stream.subject})")
        lines.append("  partitions:")
        for partition_id in sorted(stream.partitions):
            partition = stream.partitions[partition_id]
            lines.append(f"   {partition.id}")
            lines.append("    leader:")
            lines.append(f"     {broker_string(partition.leader)}")
            lines.append("    ISRs:")
            lines.extend(f"     {broker_string(isr)}" for isr in partition.isr)
            lines.append("    replicas:")
            lines.extend(f"     {broker_string(replica)}" for replica in partition.replicas)

    return lines


def partition_metadata_lines(metadata: PartitionMetadata) -> List[str]:
    """Render a partition's metadata as indented lines"""
    lines = [
        f"{metadata.id}",
        " leader:",
        f" {broker_string(metadata.leader)}",
        " ISRs:",
    ]
    lines.extend(f"  {broker_string(isr)}" for isr in metadata.isr)
    lines.append(" replicas:")
    lines.extend(f"  {broker_string(replica)}" for replica in metadata.replicas)

    lines.extend([
        " high watermark:",
        f" {metadata.high_watermark}",
        " newest offset:",
        f" {metadata.newest_offset}",
        " paused:",
        f" {str(metadata.paused).lower()}",
        " read-only:",
        f" {str(metadata.readonly).lower()}",
        " message received timestamps:",
        f" {timestamps_to_string(metadata.messages_received_timestamps)}",
        " pause timestamps:",
        f" {timestamps_to_string(metadata.pause_timestamps)}",
        " read-only timestamps:",
        f" {timestamps_to_string(metadata.readonly_timestamps)}",
    ])
    return lines
