import sys


class ModuleGraph:
    """
    Arena of module nodes addressed by integer index, with prerequisite
    edges stored as index adjacency lists.
    """

    def __init__(self):
        self.codes: list[str] = []
        self.index: dict[str, int] = {}
        self.edges: list[list[int]] = []

    def node(self, code: str) -> int:
        idx = self.index.get(code)
        if idx is None:
            idx = len(self.codes)
            self.index[code] = idx
            self.codes.append(code)
            self.edges.append([])
        return idx

    def add_edge(self, src: int, dst: int) -> None:
        if dst not in self.edges[src]:
            self.edges[src].append(dst)

    def __len__(self) -> int:
        return len(self.codes)


def resolve_prerequisite_closure(store, module_codes: list[str]) -> dict:
    """
    Transitive closure of "simple" prerequisites for a set of modules.

    Breadth-first over the module graph, one batched store call per frontier.
    A node enters the frontier only the first time it is seen, so each node is
    fetched at most once and cycles terminate.

    Returns:
      {
        "closure":       [...],  # roots + every reachable prerequisite, BFS order
        "prerequisites": [...],  # reachable modules that are not roots
        "direct":        {code: [prereq, ...]},
        "complete":      bool,   # False when a batch failed and traversal stopped
        "error":         str | None,
      }
    """
    graph = ModuleGraph()
    roots = []
    for code in module_codes:
        if code and code not in graph.index:
            roots.append(graph.node(code))

    visited = [False] * len(graph)
    for idx in roots:
        visited[idx] = True
    order = list(roots)
    frontier = list(roots)
    complete = True
    error = None

    while frontier:
        batch = [graph.codes[i] for i in frontier]
        try:
            fetched = store.get_batch_simple_prerequisites(batch)
        except Exception as exc:
            complete = False
            error = f"Prerequisite lookup failed for {sorted(batch)}: {exc}"
            print(f"[WARN] {error}", file=sys.stderr)
            break

        next_frontier = []
        for idx in frontier:
            for prereq in fetched.get(graph.codes[idx], []):
                if not prereq:
                    continue
                dst = graph.node(prereq)
                if dst >= len(visited):
                    visited.append(False)
                graph.add_edge(idx, dst)
                if not visited[dst]:
                    visited[dst] = True
                    order.append(dst)
                    next_frontier.append(dst)
        frontier = next_frontier

    root_set = set(roots)
    return {
        "closure": [graph.codes[i] for i in order],
        "prerequisites": [graph.codes[i] for i in order if i not in root_set],
        "direct": {
            graph.codes[i]: [graph.codes[j] for j in graph.edges[i]]
            for i in order
            if graph.edges[i]
        },
        "complete": complete,
        "error": error,
    }
