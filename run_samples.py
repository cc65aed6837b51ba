
#!/usr/bin/env python3
import json, subprocess, sys

def run_tool(cmd, payload, *flags):
    p = subprocess.Popen(" ".join([cmd, *flags]), shell=True, stdin=subprocess.PIPE, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    out, err = p.communicate(json.dumps(payload))
    return p.returncode, json.loads(out)

def main(optimizer_cmd):
    # Two plants, one product: the cheap plant is filled first
    plan_in = {
        "plants": [{"name": "A", "capacity": 100}, {"name": "B", "capacity": 80}],
        "production_costs": {"A": {"widget": 5}, "B": {"widget": 7}},
        "demands": [{"product": "widget", "quantity": 150}]
    }
    code, out1 = run_tool(optimizer_cmd, plan_in, "--sensitivity")
    assert code == 0
    assert out1["status"] == "ok"
    assert abs(out1["total_cost"] - 850.0) < 1e-6
    assert abs(out1["plant_utilization"]["A"] - 100.0) < 1e-6
    assert abs(out1["capacity_shadow_prices"]["A"] - 2.0) < 1e-6

    # Same plants, demand above total capacity
    short_in = dict(plan_in, demands=[{"product": "widget", "quantity": 200}])
    code, out2 = run_tool(optimizer_cmd, short_in)
    assert code == 0
    assert out2["status"] == "infeasible"
    assert abs(out2["max_deliverable"] - 180.0) < 1e-6
    assert "A capacity" in out2["bottleneck_hint"]

    # Malformed input is reported on stdout with a non-zero exit
    bad_in = dict(plan_in, plants=[{"name": "A", "capacity": -1}])
    code, out3 = run_tool(optimizer_cmd, bad_in)
    assert code == 1
    assert out3["code"] == "INVALID_PROBLEM"

    print("sample runs passed")

if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python run_samples.py '<OPTIMIZER_CMD>'")
        sys.exit(1)
    main(sys.argv[1])
