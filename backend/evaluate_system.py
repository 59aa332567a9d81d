"""
Evaluation harness for the DocQA retrieval pipeline.

Sends a fixed set of questions about the sample documents to a running API
and checks each answer for expected keywords. Reports success rate,
latency, token usage and estimated cost.

Usage:
    python evaluate_system.py [--api-url http://localhost:8000] [--output logs/evaluation_report.txt]
"""
import argparse
import os
import time
import requests
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field
import statistics
import sys

# An answer counts as successful when at least this share of keywords appears
SUCCESS_THRESHOLD = 0.5


@dataclass
class EvaluationPair:
    """Question with keywords a good answer should mention."""
    id: int
    question: str
    expected_keywords: List[str]
    category: str = ""


@dataclass
class EvaluationResult:
    """Result from executing an evaluation question."""
    pair_id: int
    question: str
    category: str
    answer: str = ""
    keyword_matches: List[str] = field(default_factory=list)
    keyword_score: float = 0.0
    latency_ms: int = 0
    tokens_used: int = 0
    estimated_cost: float = 0.0
    citations: int = 0
    retrieved_docs: int = 0
    error: Optional[str] = None

    @property
    def successful(self) -> bool:
        return self.error is None and self.keyword_score >= SUCCESS_THRESHOLD


EVALUATION_PAIRS = [
    EvaluationPair(
        id=1,
        question="What is machine learning?",
        expected_keywords=["artificial intelligence", "learn", "experience", "programmed"],
        category="definition"
    ),
    EvaluationPair(
        id=2,
        question="What are the main types of machine learning?",
        expected_keywords=["supervised", "unsupervised", "reinforcement"],
        category="classification"
    ),
    EvaluationPair(
        id=3,
        question="How does RAG work?",
        expected_keywords=["retrieval", "generation", "knowledge base", "context"],
        category="process"
    ),
    EvaluationPair(
        id=4,
        question="What is the transformer architecture?",
        expected_keywords=["attention", "self-attention", "multi-head", "positional"],
        category="architecture"
    ),
    EvaluationPair(
        id=5,
        question="What are vector databases used for?",
        expected_keywords=["vectors", "similarity", "search", "embeddings"],
        category="application"
    ),
]


def keyword_matches(answer: str, keywords: List[str]) -> List[str]:
    """Keywords that appear in the answer, case-insensitively."""
    answer_lower = answer.lower()
    return [keyword for keyword in keywords if keyword.lower() in answer_lower]


class EvaluationHarness:
    """Runs evaluation questions against the query endpoint."""

    def __init__(self, api_url: str = "http://localhost:8000", timeout: int = 60):
        """
        Initialize evaluation harness.

        Args:
            api_url: Base URL for the API
            timeout: Per-request timeout in seconds
        """
        self.api_url = api_url
        self.timeout = timeout
        self.results: List[EvaluationResult] = []

    def execute_pair(self, pair: EvaluationPair) -> EvaluationResult:
        """
        Ask one question and score the answer.

        Args:
            pair: EvaluationPair to execute

        Returns:
            EvaluationResult with response data, or the request error
        """
        result = EvaluationResult(pair_id=pair.id, question=pair.question, category=pair.category)
        start_time = time.time()

        try:
            response = requests.post(
                f"{self.api_url}/query",
                json={"query": pair.question},
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            result.error = str(e)
            return result

        result.latency_ms = int((time.time() - start_time) * 1000)
        result.answer = data.get("answer", "")
        result.tokens_used = data.get("tokensUsed", 0)
        result.estimated_cost = data.get("estimatedCost", 0.0)
        result.citations = len(data.get("citations", []))
        result.retrieved_docs = len(data.get("retrievedDocs", []))

        if result.retrieved_docs == 0:
            result.error = "No relevant documents found"
            return result

        result.keyword_matches = keyword_matches(result.answer, pair.expected_keywords)
        result.keyword_score = len(result.keyword_matches) / len(pair.expected_keywords)
        return result

    def run_evaluation(self, pairs: List[EvaluationPair], delay_ms: int = 100) -> None:
        """
        Execute all evaluation questions and collect results.

        Args:
            pairs: Questions to execute
            delay_ms: Delay between queries in milliseconds
        """
        print(f"Running evaluation with {len(pairs)} questions...")
        print(f"API URL: {self.api_url}")
        print()

        for i, pair in enumerate(pairs, start=1):
            print(f"[{i}/{len(pairs)}] {pair.question} ({pair.category})")

            result = self.execute_pair(pair)
            self.results.append(result)

            if result.error:
                print(f"  ERROR: {result.error}")
            else:
                status = "OK" if result.successful else "WEAK"
                print(f"  {status} | keywords {len(result.keyword_matches)}/{len(pair.expected_keywords)} | "
                      f"{result.latency_ms}ms | {result.tokens_used} tokens | "
                      f"${result.estimated_cost:.6f}")
                print(f"  Answer: {result.answer[:200]}...")

            # Delay between requests to avoid rate limiting
            if i < len(pairs):
                time.sleep(delay_ms / 1000.0)

        print()
        print(f"Evaluation complete. Processed {len(self.results)} questions.")

    def calculate_metrics(self) -> Dict[str, Any]:
        """
        Calculate evaluation metrics from results.

        Averages are taken over all questions, so failed questions pull
        them down.

        Returns:
            Dictionary of metrics
        """
        total = len(self.results)
        answered = [r for r in self.results if r.error is None]
        successful = [r for r in self.results if r.successful]
        latencies = [r.latency_ms for r in answered]

        total_tokens = sum(r.tokens_used for r in answered)
        total_cost = sum(r.estimated_cost for r in answered)

        return {
            "total_questions": total,
            "answered": len(answered),
            "failed": total - len(answered),
            "successful_answers": len(successful),
            "success_rate": len(successful) / total if total else 0.0,
            "latency": {
                "mean_ms": sum(latencies) / total if total else 0.0,
                "p50_ms": statistics.median(latencies) if latencies else 0.0,
                "max_ms": max(latencies) if latencies else 0,
            },
            "tokens": {
                "total": total_tokens,
                "avg_per_query": total_tokens / total if total else 0.0,
            },
            "cost": {
                "total": total_cost,
                "avg_per_query": total_cost / total if total else 0.0,
            },
        }

    def generate_report(self, metrics: Dict[str, Any], output_path: str) -> None:
        """
        Generate evaluation report and save to file.

        Args:
            metrics: Calculated metrics dictionary
            output_path: Path to save report
        """
        report_lines = []

        report_lines.append("=" * 80)
        report_lines.append("DocQA Retrieval Pipeline - Evaluation Report")
        report_lines.append("=" * 80)
        report_lines.append("")
        report_lines.append(f"Generated: {time.strftime('%Y-%m-%d %H:%M:%S')}")
        report_lines.append(f"API URL: {self.api_url}")
        report_lines.append("")

        report_lines.append("-" * 80)
        report_lines.append("SUMMARY")
        report_lines.append("-" * 80)
        report_lines.append(f"Total Questions:     {metrics['total_questions']}")
        report_lines.append(f"Answered:            {metrics['answered']}")
        report_lines.append(f"Failed:              {metrics['failed']}")
        report_lines.append(f"Successful Answers:  {metrics['successful_answers']}")
        report_lines.append(f"Success Rate:        {metrics['success_rate']:.1%}")
        report_lines.append("")

        report_lines.append("-" * 80)
        report_lines.append("LATENCY")
        report_lines.append("-" * 80)
        latency = metrics['latency']
        report_lines.append(f"Mean:  {latency['mean_ms']:8.1f} ms")
        report_lines.append(f"P50:   {latency['p50_ms']:8.1f} ms")
        report_lines.append(f"Max:   {latency['max_ms']:8d} ms")
        report_lines.append("")

        report_lines.append("-" * 80)
        report_lines.append("TOKENS AND COST")
        report_lines.append("-" * 80)
        report_lines.append(f"Total Tokens:        {metrics['tokens']['total']:,}")
        report_lines.append(f"Avg per Query:       {metrics['tokens']['avg_per_query']:.1f} tokens")
        report_lines.append(f"Total Cost:          ${metrics['cost']['total']:.6f}")
        report_lines.append(f"Avg Cost per Query:  ${metrics['cost']['avg_per_query']:.6f}")
        report_lines.append("")

        report_lines.append("-" * 80)
        report_lines.append("PER QUESTION")
        report_lines.append("-" * 80)
        for result in self.results:
            outcome = result.error or f"keyword score {result.keyword_score:.0%}"
            report_lines.append(f"{result.pair_id}. [{result.category}] {result.question}")
            report_lines.append(f"   {outcome}")
        report_lines.append("")

        report_lines.append("-" * 80)
        report_lines.append("ASSESSMENT")
        report_lines.append("-" * 80)
        if metrics['success_rate'] >= 0.8:
            report_lines.append("Excellent: high success rate indicates good retrieval and generation")
        elif metrics['success_rate'] >= 0.6:
            report_lines.append("Good: moderate success rate, consider improving retrieval or generation")
        else:
            report_lines.append("Needs improvement: low success rate, review system configuration")

        if latency['mean_ms'] <= 2000:
            report_lines.append("Fast: response time is acceptable for real-time use")
        else:
            report_lines.append("Slow: consider optimizing retrieval or using faster models")
        report_lines.append("")

        report_lines.append("=" * 80)
        report_lines.append("End of Report")
        report_lines.append("=" * 80)

        report_text = "\n".join(report_lines)
        output_dir = os.path.dirname(output_path)
        if output_dir:
            os.makedirs(output_dir, exist_ok=True)
        with open(output_path, 'w') as f:
            f.write(report_text)

        # Also print to console
        print(report_text)
        print()
        print(f"Report saved to: {output_path}")


def main():
    """Main entry point for evaluation harness."""
    parser = argparse.ArgumentParser(
        description="Evaluation harness for the DocQA retrieval pipeline"
    )
    parser.add_argument(
        "--api-url",
        default="http://localhost:8000",
        help="Base URL for the API (default: http://localhost:8000)"
    )
    parser.add_argument(
        "--output",
        default="logs/evaluation_report.txt",
        help="Output path for evaluation report (default: logs/evaluation_report.txt)"
    )
    parser.add_argument(
        "--delay",
        type=int,
        default=100,
        help="Delay between queries in milliseconds (default: 100)"
    )

    args = parser.parse_args()

    harness = EvaluationHarness(api_url=args.api_url)
    harness.run_evaluation(EVALUATION_PAIRS, delay_ms=args.delay)

    print()
    print("Calculating metrics...")
    metrics = harness.calculate_metrics()

    print()
    print("Generating report...")
    harness.generate_report(metrics, args.output)

    # Exit with error code if there were failures
    if metrics['failed'] > 0:
        print()
        print(f"WARNING: {metrics['failed']} questions failed")
        sys.exit(1)

    sys.exit(0)


if __name__ == "__main__":
    main()
