import requests
import time
import threading
import statistics
from collections import defaultdict

API_URL = "http://localhost:8000"
ENDPOINT = "/"

# 101 requests inside 60s from one forwarded IP trip the rapid_requests rule
SCENARIOS = {
    "1": ("Light traffic, stays under the rate rule", 5, 10, 0.5, None),
    "2": ("Rapid requests from one IP", 10, 15, 0.0, None),
    "3": ("Scanner user agent", 2, 5, 0.2, "sqlmap/1.7"),
    "4": ("Path traversal probe", 1, 3, 0.2, None),
}


class LoadTester:
    def __init__(self, url, num_threads=10, requests_per_thread=100, delay=0.1, ip_address="203.0.113.7", user_agent=None):
        self.url = url
        self.num_threads = num_threads
        self.requests_per_thread = requests_per_thread
        self.delay = delay
        self.headers = {"X-Forwarded-For": ip_address}
        if user_agent:
            self.headers["User-Agent"] = user_agent
        self.results = defaultdict(list)
        self.lock = threading.Lock()

    def worker(self, thread_id):
        for i in range(self.requests_per_thread):
            start_time = time.time()
            try:
                response = requests.get(self.url, headers=self.headers, timeout=5)
                elapsed = time.time() - start_time

                with self.lock:
                    self.results[response.status_code].append(elapsed)

            except requests.exceptions.Timeout:
                elapsed = time.time() - start_time
                with self.lock:
                    self.results['timeout'].append(elapsed)
            except requests.exceptions.RequestException as e:
                elapsed = time.time() - start_time
                with self.lock:
                    self.results[f'error: {type(e).__name__}'].append(elapsed)

            time.sleep(self.delay)

    def run(self):
        print("=== Load Test ===")
        print(f"URL: {self.url}")
        print(f"Source IP: {self.headers['X-Forwarded-For']}")
        print(f"Threads: {self.num_threads}")
        print(f"Requests per thread: {self.requests_per_thread}")
        print(f"Total: {self.num_threads * self.requests_per_thread} requests")
        print(f"Delay: {self.delay}s\n")

        start_time = time.time()

        threads = []
        for i in range(self.num_threads):
            t = threading.Thread(target=self.worker, args=(i,))
            threads.append(t)
            t.start()

        for t in threads:
            t.join()

        total_time = time.time() - start_time

        print("=== Results ===")
        print(f"Total time: {total_time:.2f}s")
        print(f"Requests/second: {(self.num_threads * self.requests_per_thread) / total_time:.2f}\n")

        for status, times in sorted(self.results.items(), key=lambda item: str(item[0])):
            print(f"Status {status}:")
            print(f"  Count: {len(times)}")
            print(f"  Avg: {statistics.mean(times)*1000:.2f}ms")
            print(f"  Median: {statistics.median(times)*1000:.2f}ms")
            print(f"  Min: {min(times)*1000:.2f}ms")
            print(f"  Max: {max(times)*1000:.2f}ms")
            print()

        if 403 in self.results:
            print("The source IP was blocked by the monitor.")


if __name__ == "__main__":
    print("Choose a scenario:")
    for key, (label, threads, req_per_thread, _, _) in SCENARIOS.items():
        print(f"{key}. {label} ({threads} threads, {req_per_thread} req/thread)")

    choice = input("Choice (1-4): ")

    if choice in SCENARIOS:
        _, threads, req_per_thread, delay, user_agent = SCENARIOS[choice]
        endpoint = "/?file=../../etc/passwd" if choice == "4" else ENDPOINT
        tester = LoadTester(f"{API_URL}{endpoint}", threads, req_per_thread, delay, user_agent=user_agent)
        tester.run()
    else:
        print("Invalid choice")
